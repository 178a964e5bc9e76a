"""
Unit tests for the call/runner plumbing shared by every provisioning step
"""

import unittest
from unittest.mock import Mock, patch
import json
import sys
import os

from botocore.exceptions import ClientError, EndpointConnectionError

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from identity_manager.utils import (
    AwsCall,
    CallResult,
    Command,
    IdentityError,
    Repo,
    Runner,
    kebab,
    stringify_yaml,
)


def client_error(code, operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestRepo(unittest.TestCase):

    def test_arns(self):
        repo = Repo("demo", account_id="123456789012", role_name="stress")
        self.assertEqual(repo.role_arn, "arn:aws:iam::123456789012:role/stress")
        self.assertEqual(repo.root_arn, "arn:aws:iam::123456789012:root")

    def test_empty_endpoint_is_unset(self):
        repo = Repo("demo", account_id="1", eks_endpoint="", region="")
        self.assertIsNone(repo.eks_endpoint)
        self.assertIsNone(repo.region)

    def test_cluster_name_required(self):
        with self.assertRaises(IdentityError):
            Repo("")


class TestAwsCall(unittest.TestCase):

    def test_kebab(self):
        self.assertEqual(kebab("create_access_entry"), "create-access-entry")
        self.assertEqual(kebab("principalArn"), "principal-arn")
        self.assertEqual(kebab("AssumeRolePolicyDocument"), "assume-role-policy-document")
        self.assertEqual(kebab("name"), "name")

    def test_render_matches_aws_cli(self):
        call = AwsCall(
            "eks",
            "create_access_entry",
            {
                "clusterName": "demo",
                "principalArn": "arn:aws:iam::1:role/r",
                "kubernetesGroups": ["g"],
            },
            endpoint_url="https://eks.example.com",
        )
        self.assertEqual(
            call.render(),
            "aws eks --endpoint-url https://eks.example.com create-access-entry "
            "--cluster-name demo --principal-arn arn:aws:iam::1:role/r --kubernetes-groups g",
        )

    def test_structures_render_as_json(self):
        call = AwsCall(
            "iam",
            "create_role",
            {"RoleName": "r", "Tags": [{"Key": "k", "Value": "v"}], "Scope": {"type": "cluster"}},
        )
        argv = call.argv()
        self.assertEqual(json.loads(argv[argv.index("--tags") + 1]), [{"Key": "k", "Value": "v"}])
        self.assertEqual(json.loads(argv[argv.index("--scope") + 1]), {"type": "cluster"})

    def test_invoke_success(self):
        client = Mock()
        client.create_access_entry.return_value = {"accessEntry": {}}
        result = AwsCall("eks", "create_access_entry", {"clusterName": "demo"}, client=client).invoke()
        client.create_access_entry.assert_called_once_with(clusterName="demo")
        self.assertEqual(result.status, CallResult.SUCCESS)
        self.assertEqual(result.output, {"accessEntry": {}})

    def test_invoke_classifies_errors(self):
        client = Mock()
        client.create_access_entry.side_effect = client_error("ResourceInUseException")
        result = AwsCall("eks", "create_access_entry", {}, client=client).invoke()
        self.assertEqual(result.status, CallResult.ALREADY_EXISTS)
        self.assertTrue(result.ok)

        client.create_access_entry.side_effect = client_error("AccessDeniedException")
        result = AwsCall("eks", "create_access_entry", {}, client=client).invoke()
        self.assertEqual(result.status, CallResult.FAILED)
        self.assertFalse(result.ok)

        client.create_access_entry.side_effect = EndpointConnectionError(endpoint_url="https://x")
        result = AwsCall("eks", "create_access_entry", {}, client=client).invoke()
        self.assertEqual(result.status, CallResult.FAILED)


class TestCommand(unittest.TestCase):

    @patch("identity_manager.utils.subprocess.Popen")
    def test_invoke_feeds_stdin(self, mock_popen):
        process = Mock(returncode=0)
        process.communicate.return_value = ("configured\n", "")
        mock_popen.return_value = process

        result = Command(["kubectl", "apply", "-f", "-"], input="kind: FlowSchema\n").invoke()

        self.assertEqual(result.status, CallResult.SUCCESS)
        self.assertEqual(mock_popen.call_args[0][0], ["kubectl", "apply", "-f", "-"])
        process.communicate.assert_called_once_with(input="kind: FlowSchema\n")

    @patch("identity_manager.utils.subprocess.Popen")
    def test_invoke_nonzero_exit(self, mock_popen):
        process = Mock(returncode=1)
        process.communicate.return_value = ("", "forbidden")
        mock_popen.return_value = process

        result = Command(["kubectl", "apply", "-f", "-"], input="x").invoke()
        self.assertEqual(result.status, CallResult.FAILED)
        self.assertEqual(result.error, "forbidden")

    @patch("identity_manager.utils.subprocess.Popen")
    def test_invoke_missing_binary(self, mock_popen):
        mock_popen.side_effect = FileNotFoundError("kubectl")
        result = Command(["kubectl", "version"]).invoke()
        self.assertEqual(result.status, CallResult.FAILED)
        self.assertIn("kubectl", result.error)

    def test_render_quotes(self):
        self.assertEqual(Command(["aws", "eks", "--name", "my cluster"]).render(), "aws eks --name 'my cluster'")


class TestRunner(unittest.TestCase):

    @patch("identity_manager.utils.click.echo")
    def test_dry_run_prints_instead_of_invoking(self, mock_echo):
        call = Mock(input=None)
        call.render.return_value = "aws iam create-role --role-name r"

        result = Runner(dry_run=True).run(call)

        call.invoke.assert_not_called()
        mock_echo.assert_called_once_with("[dry-run] aws iam create-role --role-name r")
        self.assertEqual(result.status, CallResult.SUCCESS)
        self.assertTrue(result.dry_run)

    @patch("identity_manager.utils.click.echo")
    def test_dry_run_prints_stdin_as_heredoc(self, mock_echo):
        Runner(dry_run=True).run(Command(["kubectl", "apply", "-f", "-"], input="kind: FlowSchema\n"))
        lines = [c[0][0] for c in mock_echo.call_args_list]
        self.assertEqual(lines, ["[dry-run] kubectl apply -f - <<EOF", "kind: FlowSchema", "EOF"])

    def test_normal_mode_invokes(self):
        call = Mock()
        call.invoke.return_value = CallResult(CallResult.SUCCESS)
        result = Runner(dry_run=False).run(call)
        call.invoke.assert_called_once_with()
        self.assertIs(result, call.invoke.return_value)


class TestStringifyYaml(unittest.TestCase):

    def test_keeps_key_order(self):
        text = stringify_yaml({"apiVersion": "v1", "kind": "FlowSchema", "metadata": {"name": "x"}})
        self.assertEqual(text, "apiVersion: v1\nkind: FlowSchema\nmetadata:\n  name: x\n")


if __name__ == "__main__":
    unittest.main()
