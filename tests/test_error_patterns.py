import pytest

from storage_console.modules.deployments.error_patterns import (
    ERROR_PATTERNS,
    INSTALL_COMMAND,
    match_error,
    resolve_placeholders,
)


@pytest.mark.parametrize("text,title", [
    ("This stack uses assets, so the toolkit stack must be deployed. Has the environment been bootstrapped?",
     "CDK Bootstrap Required"),
    ("This CDK deployment requires a newer version of the bootstrap stack", "Bootstrap Stack Outdated"),
    ("Unable to resolve AWS account to use", "AWS Credentials Missing"),
    ("An error occurred (ExpiredToken) when calling the DescribeStacks operation", "Expired AWS Token"),
    ("User: arn:aws:iam::1:user/x is not authorized to perform: s3:CreateBucket", "Permission Denied"),
    ("scr-media already exists (BucketAlreadyExists)", "S3 Bucket Name Conflict"),
    ("SCR-scr-media | CREATE_FAILED | AWS::CloudFront::Distribution", "CloudFormation Stack Failure"),
    ("ModuleNotFoundError: No module named 'aws_cdk'", "Missing Dependencies"),
    ("SyntaxError: invalid syntax", "Code Error in CDK Stack"),
    ("Rate exceeded", "AWS Rate Limit"),
])
def test_each_signature_is_recognised(text, title):
    hint = match_error(text)
    assert hint is not None
    assert hint.title == title


def test_first_match_wins():
    # Both the bootstrap and the stack-failure signatures are present
    hint = match_error("CREATE_FAILED\nIs account 123456789012 bootstrapped?")
    assert hint.title == "CDK Bootstrap Required"


def test_unknown_text_has_no_diagnosis():
    assert match_error("everything is fine") is None
    assert match_error("") is None


def test_placeholders_filled_from_text():
    text = "Is account 123456789012 bootstrapped? Region ap-southeast-2 needs it."
    hint = match_error(text)
    assert hint.command == "npx cdk bootstrap aws://123456789012/ap-southeast-2"


def test_account_from_environment_url():
    assert resolve_placeholders("aws://ACCOUNT_ID/REGION", "env aws://210987654321/us-east-1") == \
        "aws://210987654321/us-east-1"


def test_unmatched_placeholders_left_literal():
    hint = match_error("Has the environment been bootstrapped?")
    assert hint.command == "npx cdk bootstrap aws://ACCOUNT_ID/REGION"


def test_only_region_found():
    assert resolve_placeholders("aws://ACCOUNT_ID/REGION", "failed in eu-central-1") == "aws://ACCOUNT_ID/eu-central-1"


def test_hint_without_command():
    hint = match_error("AccessDenied")
    assert hint.command is None


def test_missing_dependencies_suggests_install():
    assert match_error("Cannot find module 'aws-cdk-lib'").command == INSTALL_COMMAND


def test_table_is_ordered_data():
    titles = [p.title for p in ERROR_PATTERNS]
    assert titles[0] == "CDK Bootstrap Required"
    assert titles.index("CloudFormation Stack Failure") < titles.index("Missing Dependencies")
