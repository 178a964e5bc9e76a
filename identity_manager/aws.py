import json
import logging
import time

from botocore.exceptions import BotoCoreError, ClientError
from pprint import pformat

from .template import Render
from .utils import AwsCall, CallResult, IdentityError

logger = logging.getLogger(__name__)

CONFIG_MAP = "CONFIG_MAP"
API_AND_CONFIG_MAP = "API_AND_CONFIG_MAP"
UPDATE_SUCCESSFUL = "Successful"
UPDATE_FAILED = ("Failed", "Cancelled")
CLUSTER_ADMIN_POLICY_ARN = (
    "arn:aws:eks::aws:cluster-access-policy/AmazonEKSClusterAdminPolicy"
)


class UpdateFailed(IdentityError):
    def __init__(self, update_id, status):
        super().__init__(f"Update {update_id} failed: {status}")
        self.update_id = update_id
        self.status = status


class UpdateTimeout(IdentityError):
    def __init__(self, update_id, waited):
        super().__init__(
            f"Update {update_id} still in progress after {waited:.0f} seconds"
        )
        self.update_id = update_id
        self.waited = waited


def get_account_id(session):
    """
    Account id of the calling identity.
    """
    sts = session.client("sts")
    account_id = sts.get_caller_identity().get("Account")
    logger.debug(f"caller account id: {account_id}")
    return account_id


class IAM(object):
    def __init__(self, repo, runner, session):
        """
        Init the object.
        """
        self.repo = repo
        self.runner = runner
        self.template = Render(repo)
        self.iam = session.client("iam")

    def role_exists(self):
        try:
            self.iam.get_role(RoleName=self.repo.role_name)
            return True
        except ClientError as err:
            if err.response["Error"]["Code"] != "NoSuchEntity":
                logger.warning(
                    f"Could not look up role {self.repo.role_name}, assuming absent: {err}"
                )
            return False

    def ensure_role(self):
        """
        Create the role trusting the calling account's root, unless it already exists.
        """
        if self.role_exists():
            logger.info(f"IAM role {self.repo.role_name} already exists")
            return CallResult(CallResult.ALREADY_EXISTS)

        logger.info(f"Creating IAM role {self.repo.role_name}...")
        trust_policy = json.dumps(self.template.trust_policy())
        call = AwsCall(
            "iam", "create_role", self.template.role(trust_policy), client=self.iam
        )
        result = self.runner.run(call)
        if result.status == CallResult.ALREADY_EXISTS:
            logger.info(f"IAM role {self.repo.role_name} was created concurrently")
        elif result.status == CallResult.FAILED:
            raise IdentityError(
                f"Failed to create IAM role {self.repo.role_name}: {result.error}"
            )
        return result


class Eks(object):
    def __init__(self, repo, runner, session, sleep=time.sleep, clock=time.monotonic):
        """
        Init the object.
        """
        self.repo = repo
        self.runner = runner
        self.template = Render(repo)
        self.sleep = sleep
        self.clock = clock
        self.eks = session.client("eks", endpoint_url=repo.eks_endpoint)

    def _call(self, operation, params):
        return AwsCall(
            "eks",
            operation,
            params,
            client=self.eks,
            endpoint_url=self.repo.eks_endpoint,
        )

    def get_authentication_mode(self):
        """
        Current authentication mode, CONFIG_MAP when it cannot be read.
        """
        try:
            response = self.eks.describe_cluster(name=self.repo.cluster_name)
        except (ClientError, BotoCoreError) as err:
            logger.warning(
                f"Could not read authentication mode, assuming {CONFIG_MAP}: {err}"
            )
            return CONFIG_MAP
        access_config = response["cluster"].get("accessConfig", {})
        return access_config.get("authenticationMode", CONFIG_MAP)

    def enable_access_entries(self):
        """
        Request API_AND_CONFIG_MAP mode, returns the update id (None on dry run).
        """
        logger.info(f"Enabling {API_AND_CONFIG_MAP} authentication mode...")
        result = self.runner.run(
            self._call("update_cluster_config", self.template.access_config())
        )
        if result.status == CallResult.FAILED:
            raise IdentityError(
                f"Failed to update authentication mode on {self.repo.cluster_name}: {result.error}"
            )
        if result.dry_run:
            return None
        return result.output["update"]["id"]

    def wait_for_update(self, update_id):
        logger.info(f"Waiting for update {update_id} to complete...")
        started = self.clock()
        while True:
            response = self.eks.describe_update(
                name=self.repo.cluster_name, updateId=update_id
            )
            status = response["update"]["status"]
            logger.debug(f"update {update_id} status: {status}")
            if status == UPDATE_SUCCESSFUL:
                logger.info(f"Update {update_id} completed")
                return status
            if status in UPDATE_FAILED:
                logger.debug(f"update errors:\n{pformat(response['update'].get('errors'))}")
                raise UpdateFailed(update_id, status)
            waited = self.clock() - started
            if self.repo.max_wait is not None and waited >= self.repo.max_wait:
                raise UpdateTimeout(update_id, waited)
            self.sleep(self.repo.poll_interval)

    def ensure_authentication_mode(self):
        logger.info("Checking cluster authentication mode...")
        mode = self.get_authentication_mode()
        if mode != CONFIG_MAP:
            logger.info(f"Authentication mode already supports API: {mode}")
            return mode
        update_id = self.enable_access_entries()
        if update_id is None:
            logger.info("Dry run enabled, not waiting for the update")
        else:
            self.wait_for_update(update_id)
        return API_AND_CONFIG_MAP

    def _best_effort(self, call, description):
        result = self.runner.run(call)
        if result.status == CallResult.ALREADY_EXISTS:
            logger.info(f"{description} already exists")
        elif result.status == CallResult.FAILED:
            logger.warning(f"{description} failed (check manually): {result.error}")
        return result

    def create_access_entry(self):
        logger.info("Creating EKS access entry...")
        return self._best_effort(
            self._call("create_access_entry", self.template.access_entry()),
            "Access entry",
        )

    def associate_access_policy(self, policy_arn=CLUSTER_ADMIN_POLICY_ARN):
        logger.info("Associating EKS access policy...")
        return self._best_effort(
            self._call("associate_access_policy", self.template.access_policy(policy_arn)),
            "Access policy association",
        )
