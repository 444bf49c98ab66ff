"""Common constants shared across Quokka modules."""

# Services whose ARNs carry no region segment (global services).
REGIONLESS_SERVICES = frozenset(
    {
        "iam",
        "s3",
        "sts",
        "cloudfront",
        "route53",
        "organizations",
        "waf",
    }
)

# Services whose ARNs carry no account segment.
ACCOUNTLESS_SERVICES = frozenset({"s3", "apigateway"})

WILDCARD_RESOURCE = "*"

STACK_CAPABILITIES = ["CAPABILITY_IAM"]

# Template parameter keys, in the order they are passed to the backend.
PARAM_EMAIL = "Email"
PARAM_UID = "UID"
PARAM_CODE_BUCKET = "CodeBucket"
PARAM_CODE_KEY = "CodeKey"

# CloudFormation stack statuses the lifecycle controller branches on.
CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
CREATE_COMPLETE = "CREATE_COMPLETE"
CREATE_FAILED = "CREATE_FAILED"
DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
DELETE_COMPLETE = "DELETE_COMPLETE"
DELETE_FAILED = "DELETE_FAILED"
