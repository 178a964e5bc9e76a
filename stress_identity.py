#! /usr/bin/env python3
import click
import logging
import sys

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from identity_manager.aws import IAM, Eks, get_account_id
from identity_manager.kube import Kubeconfig, Kubectl
from identity_manager.utils import (
    DEFAULT_FLOWSCHEMA_NAME,
    DEFAULT_K8S_GROUP,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PRIORITY_LEVEL,
    DEFAULT_ROLE_NAME,
    IdentityError,
    Repo,
    Runner,
    log_debug_parameters,
)

logging.basicConfig(
    level=logging.INFO,
    format=("%(asctime)s [%(name)s] [%(levelname)s] %(message)s"),
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

EPILOG = """\b
Example:
  CLUSTER_NAME=my-cluster kube-stress-identity
  CLUSTER_NAME=my-cluster kube-stress-identity --dry-run
  CLUSTER_NAME=my-cluster ROLE_NAME=custom-role EKS_ENDPOINT=https://eks.example.com kube-stress-identity
"""


class IdentityCommand(click.Command):
    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.NoSuchOption as err:
            raise click.UsageError(f"Unknown option: {err.option_name}", ctx=ctx)


def provision(repo, iam, eks, kubectl, kubeconfig):
    """
    Role, authentication mode, access entry and policy, FlowSchema, kubeconfig.
    The FlowSchema goes in before the kubeconfig switch.
    """
    logger.info("Setting up identity for kube-stress list command...")
    logger.info(f"  Cluster: {repo.cluster_name}")
    logger.info(f"  Role ARN: {repo.role_arn}")
    logger.info(f"  K8s Group: {repo.k8s_group}")

    iam.ensure_role()
    eks.ensure_authentication_mode()
    eks.create_access_entry()
    eks.associate_access_policy()
    kubectl.apply_flowschema()
    kubeconfig.update()


@click.command(
    cls=IdentityCommand,
    epilog=EPILOG,
    context_settings={"help_option_names": ["-h", "--help"]},
)
# fmt: off
@click.option("--dry-run",
    "-n",
    is_flag=True,
    help="Print commands without executing",
)
@click.option("--cluster-name",
    envvar="CLUSTER_NAME",
    required=True,
    show_envvar=True,
    help="EKS cluster name",
)
@click.option("--account-id",
    envvar="ACCOUNT_ID",
    default=None,
    show_envvar=True,
    help="AWS account ID (default: auto-detect)",
)
@click.option("--role-name",
    envvar="ROLE_NAME",
    default=DEFAULT_ROLE_NAME,
    show_default=True,
    show_envvar=True,
    help="IAM role name",
)
@click.option("--k8s-group",
    envvar="K8S_GROUP",
    default=DEFAULT_K8S_GROUP,
    show_default=True,
    show_envvar=True,
    help="Kubernetes group",
)
@click.option("--eks-endpoint",
    envvar="EKS_ENDPOINT",
    default=None,
    show_envvar=True,
    help="Custom EKS service endpoint",
)
@click.option("--region",
    "-r",
    envvar="AWS_REGION",
    default=None,
    help="AWS Region (default: boto3 configuration)",
)
@click.option("--poll-interval",
    type=click.FloatRange(min=0),
    default=DEFAULT_POLL_INTERVAL,
    show_default=True,
    help="Seconds between cluster update status checks",
)
@click.option("--max-wait",
    type=click.FloatRange(min=0),
    default=None,
    help="Give up on the cluster update after this many seconds (default: wait forever)",
)
@click.option("--flowschema-name",
    default=DEFAULT_FLOWSCHEMA_NAME,
    show_default=True,
    help="FlowSchema name",
)
@click.option("--priority-level",
    default=DEFAULT_PRIORITY_LEVEL,
    show_default=True,
    help="APF priority level the group's reads are routed to",
)
@click.option("--debug",
    is_flag=True,
    help="Enable debug mode",
)
# fmt: on
@log_debug_parameters
def cli(
    dry_run,
    cluster_name,
    account_id,
    role_name,
    k8s_group,
    eks_endpoint,
    region,
    poll_interval,
    max_wait,
    flowschema_name,
    priority_level,
    debug,
):
    """
    Create an IAM role and EKS access entry for kube-stress list command,
    routed to workload-low APF priority level.
    """
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("botocore").setLevel(logging.INFO)
        logging.getLogger("boto3").setLevel(logging.INFO)
        logger.debug("Debug mode is enabled")

    try:
        session = boto3.Session(region_name=region)
        if not account_id:
            account_id = get_account_id(session)
        repo = Repo(
            cluster_name,
            account_id=account_id,
            role_name=role_name,
            k8s_group=k8s_group,
            eks_endpoint=eks_endpoint,
            region=region,
            dry_run=dry_run,
            debug=debug,
            poll_interval=poll_interval,
            max_wait=max_wait,
            flowschema_name=flowschema_name,
            priority_level=priority_level,
        )
        runner = Runner(dry_run=dry_run)
        provision(
            repo,
            IAM(repo, runner, session),
            Eks(repo, runner, session),
            Kubectl(repo, runner),
            Kubeconfig(repo, runner),
        )
    except IdentityError as err:
        logger.error(err)
        sys.exit(1)
    except (ClientError, BotoCoreError) as err:
        logger.error(f"AWS error: {err}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
