#!/usr/bin/env python3
"""CDK entry point: one S3 + CloudFront stack per bucket, parameterised by env vars."""
import os

import aws_cdk as cdk

from stacks.storage_bucket_stack import StorageBucketStack

app = cdk.App()

bucket_name = os.environ.get("SCR_BUCKET_NAME") or "scr-default-bucket"
region = os.environ.get("SCR_REGION") or "us-east-1"

StorageBucketStack(
    app,
    f"SCR-{bucket_name}",
    bucket_name=bucket_name,
    env=cdk.Environment(region=region),
)

app.synth()
