"""Login bookkeeping for users."""

import logging
from typing import TYPE_CHECKING

from trackcer.infrastructure.persistence.models import UserModel, utc_now

if TYPE_CHECKING:
    from trackcer.application.workers.job_runner import JobRunner

logger = logging.getLogger(__name__)


class UserService:
    """Runs the first-login import for new users."""

    def __init__(self, job_runner: "JobRunner") -> None:
        self.job_runner = job_runner

    async def on_user_login(self, user: UserModel) -> bool:
        """Record a login and kick off the initial import once.

        The first login dispatches the history job, then the producer job, and marks
        the user as fetched so later logins only touch last_login_at. The caller's
        session persists the changes.

        Returns:
            True if the initial import was dispatched by this login
        """
        user.last_login_at = utc_now()
        if user.initial_data_fetched:
            return False

        self.job_runner.dispatch_initial_import(user.id)
        user.initial_data_fetched = True
        logger.info("Dispatched initial data import", extra={"user_id": user.id})
        return True
