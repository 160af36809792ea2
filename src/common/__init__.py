"""
Common utilities for the EBS encryption workflow.

Modules:
- ec2: boto3 EC2 gateway translating botocore failures into ProviderError
- polling: generic wait-until helper driven by a RetryPolicy
- settings: environment-backed run configuration
"""

__all__ = [
    "ec2",
    "polling",
    "settings",
]
