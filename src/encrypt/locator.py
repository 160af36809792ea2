from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError

from common.ec2 import Ec2Client, ProviderError
from state.models import VolumeRecord


logger = logging.getLogger(__name__)


def resolve_region(override: Optional[str] = None, *, session: Optional[Any] = None) -> str:
    """Return `override` or the region configured for the boto3 session.

    Raises ProviderError when neither yields a region.
    """
    if override:
        return override
    try:
        sess = session or boto3.session.Session()
        region = sess.region_name
    except BotoCoreError as e:
        raise ProviderError(f"Unable to determine AWS region: {e}") from e
    if not region:
        raise ProviderError("Unable to determine AWS region; pass --region or configure a default")
    return region


def _user_tags(raw: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for tag in raw or []:
        key = tag.get("Key")
        if key and not key.startswith("aws:"):
            out[key] = tag.get("Value", "")
    return out


def _attachment_for(volume: Dict[str, Any], instance_id: str) -> Dict[str, Any]:
    for att in volume.get("Attachments") or []:
        if att.get("InstanceId") == instance_id:
            return att
    return {}


def list_attached_volumes(ec2: Ec2Client, instance_id: str) -> List[VolumeRecord]:
    """Enumerate the instance's EBS volumes in block-device-mapping order."""
    instance = ec2.describe_instance(instance_id)

    mappings: List[Dict[str, Any]] = []
    for bdm in instance.get("BlockDeviceMappings") or []:
        ebs = bdm.get("Ebs")
        if not ebs or not ebs.get("VolumeId"):
            logger.warning("%s: skipping non-EBS device %s", instance_id, bdm.get("DeviceName"))
            continue
        mappings.append(bdm)

    described = {v.get("VolumeId"): v for v in ec2.describe_volumes(m["Ebs"]["VolumeId"] for m in mappings)}

    records: List[VolumeRecord] = []
    for bdm in mappings:
        volume_id = bdm["Ebs"]["VolumeId"]
        vol = described.get(volume_id)
        if vol is None:
            raise ProviderError(f"Volume {volume_id} of {instance_id} missing from describe_volumes")
        att = _attachment_for(vol, instance_id)
        device = att.get("Device") or bdm.get("DeviceName")
        dot = att.get("DeleteOnTermination")
        if dot is None:
            dot = bdm["Ebs"].get("DeleteOnTermination")
        try:
            records.append(
                VolumeRecord(
                    volume_id=volume_id,
                    availability_zone=vol["AvailabilityZone"],
                    volume_type=vol["VolumeType"],
                    device_path=device or None,
                    delete_on_termination=dot,
                    encrypted=bool(vol.get("Encrypted", False)),
                    size=vol.get("Size"),
                    iops=vol.get("Iops"),
                    throughput=vol.get("Throughput"),
                    tags=_user_tags(vol.get("Tags")),
                )
            )
        except KeyError as ex:
            raise ProviderError(f"Volume {volume_id} is missing field {ex}") from ex

    logger.info("%s: found %d attached EBS volume(s)", instance_id, len(records))
    return records
