"""Known CDK failure signatures and the fix we suggest for each.

ERROR_PATTERNS is scanned in order and the first match wins, so put specific
signatures ahead of broad ones. ACCOUNT_ID and REGION in a command are filled
from the diagnostic text when it contains them.
"""
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple

from storage_console.modules.deployments.schemas import ErrorHint

INSTALL_COMMAND = (
    "cd infrastructure/cdk && python -m venv .venv && .venv/bin/pip install -r requirements.txt"
)


@dataclass(frozen=True)
class ErrorPattern:
    pattern: Pattern[str]
    title: str
    suggestion: str
    command: Optional[str] = None


def _p(expr: str) -> Pattern[str]:
    return re.compile(expr, re.IGNORECASE)


ERROR_PATTERNS: Tuple[ErrorPattern, ...] = (
    ErrorPattern(
        _p(r"Is account \d+ bootstrapped|Has the environment been bootstrapped|No bucket named 'cdk-hnb659fds-assets"),
        "CDK Bootstrap Required",
        "Your AWS account/region has not been bootstrapped for CDK. The CDK needs a bootstrap "
        "stack to store assets. Run the bootstrap command with your account ID and region.",
        "npx cdk bootstrap aws://ACCOUNT_ID/REGION",
    ),
    ErrorPattern(
        _p(r"Bootstrap stack.*outdated|requires a newer version of the bootstrap"),
        "Bootstrap Stack Outdated",
        "Your CDK bootstrap stack is outdated and needs to be updated. Re-run the bootstrap "
        "command to upgrade it.",
        "npx cdk bootstrap aws://ACCOUNT_ID/REGION",
    ),
    ErrorPattern(
        _p(r"Unable to resolve AWS account|NoCredentialsError|Unable to locate credentials"),
        "AWS Credentials Missing",
        "No valid AWS credentials found. Configure credentials via environment variables or AWS CLI.",
        "aws configure",
    ),
    ErrorPattern(
        _p(r"ExpiredTokenException|ExpiredToken"),
        "Expired AWS Token",
        "Your AWS session token has expired. Refresh your credentials.",
        "aws sts get-caller-identity",
    ),
    ErrorPattern(
        _p(r"AccessDenied|is not authorized"),
        "Permission Denied",
        "The IAM identity does not have permission for this operation. Check your IAM policies.",
    ),
    ErrorPattern(
        _p(r"BucketAlreadyExists|BucketAlreadyOwnedByYou"),
        "S3 Bucket Name Conflict",
        "This bucket name is already taken globally. Choose a different bucket name.",
    ),
    ErrorPattern(
        _p(r"CREATE_FAILED|UPDATE_FAILED|ROLLBACK"),
        "CloudFormation Stack Failure",
        "The stack deployment failed. Check the CloudFormation console for details, or run with verbose flag.",
        "npx cdk deploy --verbose --require-approval never",
    ),
    ErrorPattern(
        _p(r"ENOENT|Cannot find module|Module not found|ModuleNotFoundError|No module named|No such file or directory"),
        "Missing Dependencies",
        "CDK dependencies are missing. Install them in the infrastructure directory.",
        INSTALL_COMMAND,
    ),
    ErrorPattern(
        _p(r"SyntaxError|TypeError|ReferenceError|NameError"),
        "Code Error in CDK Stack",
        "There is a code error in your CDK stack. Run synth to check for issues.",
        "npx cdk synth",
    ),
    ErrorPattern(
        _p(r"rate exceeded|Throttling"),
        "AWS Rate Limit",
        "AWS API rate limit hit. Wait a moment and try again.",
    ),
)

_ACCOUNT_RES = (
    re.compile(r"account\s+(\d{12})", re.IGNORECASE),
    re.compile(r"aws://(\d{12})"),
)
_REGION_RE = re.compile(r"(?:eu|us|ap|sa|ca|me|af)-\w+-\d+")


def resolve_placeholders(command: str, text: str) -> str:
    """Fill ACCOUNT_ID / REGION in ``command`` from ``text``; leave them as-is when absent."""
    for account_re in _ACCOUNT_RES:
        account_match = account_re.search(text)
        if account_match:
            command = command.replace("ACCOUNT_ID", account_match.group(1))
            break
    region_match = _REGION_RE.search(text)
    if region_match:
        command = command.replace("REGION", region_match.group(0))
    return command


def match_error(text: str, patterns: Tuple[ErrorPattern, ...] = ERROR_PATTERNS) -> Optional[ErrorHint]:
    for entry in patterns:
        if entry.pattern.search(text):
            command = resolve_placeholders(entry.command, text) if entry.command else None
            return ErrorHint(title=entry.title, suggestion=entry.suggestion, command=command)
    return None
