import logging

logger = logging.getLogger(__name__)

READ_VERBS = ["get", "list", "watch"]
MATCHING_PRECEDENCE = 1000


class Render(object):
    def __init__(self, repo):
        """
        Init the object.
        """
        self.repo = repo

    def trust_policy(self):
        trust_policy = {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"AWS": self.repo.root_arn},
                    "Action": "sts:AssumeRole",
                }
            ],
        }
        return trust_policy

    def role(self, trust_policy_document):
        role_config = {
            "RoleName": self.repo.role_name,
            "AssumeRolePolicyDocument": trust_policy_document,
            "Description": "kube-stress list command identity",
            "Tags": [{"Key": "CreatedBy", "Value": "kube-stress-identity"}],
        }
        return role_config

    def access_config(self):
        return {
            "name": self.repo.cluster_name,
            "accessConfig": {"authenticationMode": "API_AND_CONFIG_MAP"},
        }

    def access_entry(self):
        access_entry_config = {
            "clusterName": self.repo.cluster_name,
            "principalArn": self.repo.role_arn,
            "kubernetesGroups": [self.repo.k8s_group],
        }
        return access_entry_config

    def access_policy(self, policy_arn):
        access_policy_config = {
            "clusterName": self.repo.cluster_name,
            "principalArn": self.repo.role_arn,
            "policyArn": policy_arn,
            "accessScope": {"type": "cluster"},
        }
        return access_policy_config

    def flowschema(self):
        """
        FlowSchema routing every read from the identity's group into the
        configured priority level, one flow per user.
        """
        flowschema_config = {
            "apiVersion": "flowcontrol.apiserver.k8s.io/v1",
            "kind": "FlowSchema",
            "metadata": {"name": self.repo.flowschema_name},
            "spec": {
                "priorityLevelConfiguration": {"name": self.repo.priority_level},
                "matchingPrecedence": MATCHING_PRECEDENCE,
                "distinguisherMethod": {"type": "ByUser"},
                "rules": [
                    {
                        "subjects": [
                            {
                                "kind": "Group",
                                "group": {"name": self.repo.k8s_group},
                            }
                        ],
                        "resourceRules": [
                            {
                                "verbs": list(READ_VERBS),
                                "apiGroups": ["*"],
                                "resources": ["*"],
                                "namespaces": ["*"],
                            }
                        ],
                    }
                ],
            },
        }
        logger.debug(f"flowschema config: {flowschema_config}")
        return flowschema_config
