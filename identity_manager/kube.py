import logging

from .template import Render
from .utils import Command, IdentityError, stringify_yaml

logger = logging.getLogger(__name__)


class Kubectl(object):
    def __init__(self, repo, runner, kubectl="kubectl"):
        """
        Init the object.
        """
        self.repo = repo
        self.runner = runner
        self.kubectl = kubectl
        self.template = Render(repo)

    def apply(self, manifest):
        result = self.runner.run(Command([self.kubectl, "apply", "-f", "-"], input=manifest))
        if not result.ok:
            raise IdentityError(f"kubectl apply failed: {result.error}")
        return result

    def apply_flowschema(self):
        """
        Apply with the current credentials, the limited role cannot manage flowcontrol objects.
        """
        logger.info("Applying FlowSchema...")
        return self.apply(stringify_yaml(self.template.flowschema()))


class Kubeconfig(object):
    def __init__(self, repo, runner, aws="aws"):
        """
        Init the object.
        """
        self.repo = repo
        self.runner = runner
        self.aws = aws

    def command(self):
        argv = [
            self.aws,
            "eks",
            "update-kubeconfig",
            "--name",
            self.repo.cluster_name,
            "--role-arn",
            self.repo.role_arn,
        ]
        if self.repo.region:
            argv += ["--region", self.repo.region]
        if self.repo.eks_endpoint:
            argv += ["--endpoint", self.repo.eks_endpoint]
        return Command(argv)

    def update(self):
        logger.info("Configuring kubeconfig to use this identity...")
        result = self.runner.run(self.command())
        if not result.ok:
            raise IdentityError(f"aws eks update-kubeconfig failed: {result.error}")
        logger.info(f"kubectl is now configured to use {self.repo.role_arn}")
        return result
