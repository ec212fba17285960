"""
Shared constants for stack-console.
"""

TRADLE_ACCOUNT_ID = "210041114155"
SERVICES_STACK_TEMPLATE_URL = (
    "https://s3.eu-west-2.amazonaws.com/tradle.io/cf-templates/kyc-in-ecs/main.yml"
)

REPO_NAMES = {
    "truefaceSpoof": "trueface-spoof",
    "rankOne": "rank-one",
    "nginx": "tradle-kyc-nginx-proxy",
}

# Buckets that may be too large to empty synchronously
BIG_BUCKETS = ["LogsBucket", "ObjectsBucket"]

SAFE_REMOTE_COMMANDS = ["log", "tail", "update", "list-previous-versions", "load"]
REMOTE_ONLY_COMMANDS = ["log", "tail", "update", "list-previous-versions"]

FUNCTIONS = {
    "setconf": "setconf",
    "cli": "cli",
    "import_data_utils": "import_data_utils",
}

RESOURCE_TYPES = {
    "bucket": "AWS::S3::Bucket",
    "function": "AWS::Lambda::Function",
    "table": "AWS::DynamoDB::Table",
    "stack": "AWS::CloudFormation::Stack",
}

DEFAULT_SETTINGS_FILE = ".stack-console.yml"
