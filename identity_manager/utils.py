import io
import json
import logging
import os
import re
import shlex
import subprocess

import click
import yaml

from botocore.exceptions import BotoCoreError, ClientError
from functools import wraps

logger = logging.getLogger(__name__)

DEFAULT_ROLE_NAME = "kube-stress-list-role"
DEFAULT_K8S_GROUP = "kube-stress-list-group"
DEFAULT_FLOWSCHEMA_NAME = "kube-stress-list"
DEFAULT_PRIORITY_LEVEL = "workload-low"
DEFAULT_POLL_INTERVAL = 5

ALREADY_EXISTS_CODES = (
    "EntityAlreadyExists",
    "ResourceInUseException",
    "ResourceExistsException",
)


class IdentityError(Exception):
    """Fatal provisioning error, the run stops with exit status 1."""


class Repo(object):
    def __init__(
        self,
        cluster_name,
        account_id=None,
        role_name=DEFAULT_ROLE_NAME,
        k8s_group=DEFAULT_K8S_GROUP,
        eks_endpoint=None,
        region=None,
        dry_run=False,
        debug=False,
        poll_interval=DEFAULT_POLL_INTERVAL,
        max_wait=None,
        flowschema_name=DEFAULT_FLOWSCHEMA_NAME,
        priority_level=DEFAULT_PRIORITY_LEVEL,
    ):
        """
        Resolved configuration, built once at start-up and handed to every component.
        """
        if not cluster_name:
            raise IdentityError("CLUSTER_NAME is required")
        self.cluster_name = cluster_name
        self.account_id = account_id
        self.role_name = role_name
        self.k8s_group = k8s_group
        self.eks_endpoint = eks_endpoint or None
        self.region = region or None
        self.dry_run = dry_run
        self.debug = debug
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.flowschema_name = flowschema_name
        self.priority_level = priority_level

        logger.debug(f"Repo object created with dry_run={dry_run}, debug={debug}")

    @property
    def role_arn(self):
        return f"arn:aws:iam::{self.account_id}:role/{self.role_name}"

    @property
    def root_arn(self):
        return f"arn:aws:iam::{self.account_id}:root"


class CallResult(object):
    SUCCESS = "success"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"

    def __init__(self, status, output=None, error=None, dry_run=False):
        self.status = status
        self.output = output
        self.error = error
        self.dry_run = dry_run

    def __repr__(self):
        return f"CallResult(status={self.status!r}, error={self.error!r}, dry_run={self.dry_run})"

    @property
    def ok(self):
        return self.status != self.FAILED

    @classmethod
    def from_client_error(cls, err):
        code = err.response.get("Error", {}).get("Code", "")
        if code in ALREADY_EXISTS_CODES:
            return cls(cls.ALREADY_EXISTS, error=str(err))
        return cls(cls.FAILED, error=str(err))


def kebab(name):
    """
    boto3 operation/parameter name to its aws cli spelling:
    create_access_entry -> create-access-entry, principalArn -> principal-arn,
    AssumeRolePolicyDocument -> assume-role-policy-document
    """
    name = name.replace("_", "-")
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "-", name).lower()


class AwsCall(object):
    def __init__(self, service, operation, params, client=None, endpoint_url=None):
        """
        A single mutating AWS API call, dispatched through boto3.
        """
        self.service = service
        self.operation = operation
        self.params = params
        self.client = client
        self.endpoint_url = endpoint_url

    def argv(self):
        """The equivalent aws cli invocation."""
        argv = ["aws", self.service]
        if self.endpoint_url:
            argv += ["--endpoint-url", self.endpoint_url]
        argv.append(kebab(self.operation))
        for key, value in self.params.items():
            argv.append(f"--{kebab(key)}")
            if isinstance(value, (list, tuple)) and all(
                isinstance(v, str) for v in value
            ):
                argv.extend(value)
            elif isinstance(value, (dict, list, tuple)):
                argv.append(json.dumps(value, separators=(",", ":")))
            else:
                argv.append(str(value))
        return argv

    def render(self):
        return shlex.join(self.argv())

    def invoke(self):
        logger.debug(f"Calling {self.service}.{self.operation} with {self.params}")
        try:
            response = getattr(self.client, self.operation)(**self.params)
        except ClientError as err:
            return CallResult.from_client_error(err)
        except BotoCoreError as err:
            return CallResult(CallResult.FAILED, error=str(err))
        return CallResult(CallResult.SUCCESS, output=response)


class Command(object):
    def __init__(self, argv, input=None):
        """
        A single external cli invocation, stdin optional.
        """
        self.argv = list(argv)
        self.input = input

    def render(self):
        return shlex.join(self.argv)

    def invoke(self):
        try:
            returncode, stdout, stderr = run_command(self.argv, input=self.input)
        except OSError as err:
            return CallResult(CallResult.FAILED, error=f"{self.argv[0]}: {err}")
        if returncode != 0:
            return CallResult(CallResult.FAILED, output=stdout, error=stderr)
        return CallResult(CallResult.SUCCESS, output=stdout)


class Runner(object):
    def __init__(self, dry_run=False):
        """
        Execution policy for every mutating call: invoke it, or only print it.
        """
        self.dry_run = dry_run

    def run(self, call):
        if not self.dry_run:
            return call.invoke()
        if getattr(call, "input", None):
            click.echo(f"[dry-run] {call.render()} <<EOF")
            click.echo(call.input.rstrip("\n"))
            click.echo("EOF")
        else:
            click.echo(f"[dry-run] {call.render()}")
        return CallResult(CallResult.SUCCESS, dry_run=True)


def log_debug_parameters(func):
    """Decorator to log function parameters at debug level."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        if args:
            logger.debug(f"Positional args: {', '.join(map(str, args))}")
        if kwargs:
            details = ", ".join([f"{key}: {value}" for key, value in kwargs.items()])
            logger.debug(f"Keyword args: {details}")
        return func(*args, **kwargs)

    return wrapper


def run_command(command, input=None):
    """
    Exec the specified command, feeding input on stdin, and collect its output.
    """
    logger.info("Running command '%s'", " ".join(command))
    process = subprocess.Popen(
        command,
        shell=False,
        cwd=os.getcwd(),
        stdin=subprocess.PIPE if input is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    stdout, stderr = process.communicate(input=input)
    if stdout:
        logger.info("Command output: %s", stdout.rstrip())
    if stderr:
        logger.error("Command error: %s", stderr.rstrip())
    return process.returncode, stdout, stderr


def stringify_yaml(yaml_data):
    """
    Dump the yaml to a string, keeping key order.
    """
    f = io.StringIO()
    yaml.dump(yaml_data, f, default_flow_style=False, sort_keys=False)
    f.seek(0)
    return f.read()
