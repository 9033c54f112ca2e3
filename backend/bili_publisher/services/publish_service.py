"""
Publish orchestration.

Every call that needs an account's cookie on biliup goes through the
reconciler first. Publishing also probes the cookie against Bilibili,
since revoked cookies are the usual reason uploads fail; status queries
skip that probe.

Usage:
    service = PublishService(client, reconciler)
    outcome = service.publish(job)
    outcome = service.get_status(outcome.task_id)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from bili_publisher.credentials.vault import CredentialExpiredError
from bili_publisher.integrations.biliup.client import BiliupClient, UserProfile
from bili_publisher.integrations.biliup.jobs import PublishJobSpec
from bili_publisher.services.publish_status import PublishStatus, is_credential_failure, map_job_state
from bili_publisher.services.reconciler import CredentialReconciler
from bili_publisher.utils.payloads import extract_field

logger = logging.getLogger(__name__)

SUBMITTED_MESSAGE = "发布任务已提交"

TASK_ID_FIELDS = ("task_id", "taskId", "id")
STATE_FIELDS = ("state",)


@dataclass
class PublishOutcome:
    task_id: Optional[str]
    status: PublishStatus
    message: str


class PublishService:
    """Submits and tracks biliup publish jobs for one account at a time."""

    def __init__(self, client: BiliupClient, reconciler: CredentialReconciler):
        self.client = client
        self.reconciler = reconciler

    def publish(self, job: PublishJobSpec) -> PublishOutcome:
        """
        Reconcile (with liveness probe) and submit a job.

        Raises:
            CredentialExpiredError: The account must log in again, including
                when biliup answers the submit with a cookie failure
            RecoveryFailedError: The cookie could not be restored for biliup
        """
        self.reconciler.ensure_ready(job.account_id, probe_liveness=True)

        response = self.client.submit_job(job)
        task_id = extract_field(response, TASK_ID_FIELDS)
        state = extract_field(response, STATE_FIELDS)

        status = PublishStatus.PROCESSING
        if state is not None:
            status, _ = map_job_state(state)

        if is_credential_failure(status):
            logger.warning(
                "biliup rejected the job credential",
                extra={"account_id": job.account_id, "task_id": task_id, "status": status.value},
            )
            if status == PublishStatus.COOKIE_EXPIRED:
                self.reconciler.revoke(job.account_id, reason="rejected_upstream")
            raise CredentialExpiredError(
                f"biliup reported {status.value} for account: {job.account_id}, please re-login"
            )

        logger.info(
            "Publish job submitted",
            extra={
                "account_id": job.account_id,
                "task_id": task_id,
                "status": status.value,
            },
        )
        return PublishOutcome(task_id=task_id, status=status, message=SUBMITTED_MESSAGE)

    def get_status(self, task_id: str, account_id: Optional[str] = None) -> PublishOutcome:
        """
        Query a job and map its state.

        When ``account_id`` is given, the artifact is reconciled first (no
        liveness probe) so a biliup restart mid-upload does not surface as
        COOKIE_MISSING.
        """
        if account_id:
            self.reconciler.ensure_ready(account_id, probe_liveness=False)

        response = self.client.query_job(task_id)
        status, message = map_job_state(extract_field(response, STATE_FIELDS))
        if is_credential_failure(status):
            logger.warning(
                "Publish job failed on its credential",
                extra={"task_id": task_id, "account_id": account_id, "status": status.value},
            )
        return PublishOutcome(task_id=task_id, status=status, message=message)

    def get_user_info(self, account_id: str) -> UserProfile:
        """Profile for the account, via a reconciled and probed cookie."""
        ready = self.reconciler.ensure_ready(account_id, probe_liveness=True)
        return ready.profile

    def logout(self, account_id: str) -> None:
        """Forget the account's cookie in the vault and on the shared volume."""
        self.reconciler.revoke(account_id, reason="logout")
        logger.info("Account logged out", extra={"account_id": account_id})
