from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError


class ProviderError(RuntimeError):
    """An EC2 API call failed or returned data we cannot use."""

    def __init__(self, message: str, *, code: Optional[str] = None, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code
        self.operation = operation


class ResourceNotFoundError(ProviderError):
    """The referenced instance, volume or snapshot does not exist."""


def _tag_list(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in tags.items()]


class Ec2Client:
    """
    Thin synchronous gateway over the boto3 EC2 client.

    Notes
    - Every botocore failure is re-raised as `ProviderError`; error codes ending
      in `.NotFound` become `ResourceNotFoundError`.
    - Only the calls the encryption workflow needs are exposed. Waiting is not
      done here: callers combine the `*_state` probes with `common.polling`.
    - Pass `client` to inject a fake in tests.
    """

    def __init__(self, *, region_name: Optional[str] = None, client: Optional[Any] = None) -> None:
        if client is not None:
            self._client = client
            return
        try:
            self._client = boto3.client("ec2", region_name=region_name)
        except BotoCoreError as e:
            raise ProviderError(f"Unable to create EC2 client: {e}") from e

    # --------------- Internal ---------------
    def _call(self, operation: str, **kwargs: Any) -> Dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            resp = method(**kwargs)
        except ClientError as e:
            err = e.response.get("Error", {})
            code = err.get("Code")
            msg = err.get("Message") or str(e)
            cls = ResourceNotFoundError if code and code.endswith(".NotFound") else ProviderError
            raise cls(f"{operation} failed: {msg} (code={code})", code=code, operation=operation) from e
        except BotoCoreError as e:
            raise ProviderError(f"{operation} failed: {e}", operation=operation) from e
        return resp if isinstance(resp, dict) else {}

    # --------------- Instances ---------------
    def describe_instance(self, instance_id: str) -> Dict[str, Any]:
        resp = self._call("describe_instances", InstanceIds=[instance_id])
        for reservation in resp.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                if instance.get("InstanceId") == instance_id:
                    return instance
        raise ResourceNotFoundError(
            f"Instance {instance_id} not found", code="InvalidInstanceID.NotFound", operation="describe_instances"
        )

    def instance_state(self, instance_id: str) -> str:
        state = self.describe_instance(instance_id).get("State", {}).get("Name")
        if not isinstance(state, str):
            raise ProviderError(f"Instance {instance_id} has no state", operation="describe_instances")
        return state

    def stop_instance(self, instance_id: str) -> None:
        self._call("stop_instances", InstanceIds=[instance_id])

    def start_instance(self, instance_id: str) -> None:
        self._call("start_instances", InstanceIds=[instance_id])

    def set_delete_on_termination(self, instance_id: str, device: str, flag: bool) -> None:
        self._call(
            "modify_instance_attribute",
            InstanceId=instance_id,
            BlockDeviceMappings=[{"DeviceName": device, "Ebs": {"DeleteOnTermination": flag}}],
        )

    # --------------- Volumes ---------------
    def describe_volumes(self, volume_ids: Iterable[str]) -> List[Dict[str, Any]]:
        ids = list(volume_ids)
        if not ids:
            return []
        resp = self._call("describe_volumes", VolumeIds=ids)
        return list(resp.get("Volumes", []))

    def volume_state(self, volume_id: str) -> str:
        vols = self.describe_volumes([volume_id])
        if not vols or not isinstance(vols[0].get("State"), str):
            raise ProviderError(f"Volume {volume_id} has no state", operation="describe_volumes")
        return vols[0]["State"]

    def create_volume(
        self,
        *,
        snapshot_id: str,
        availability_zone: str,
        volume_type: str,
        kms_key_id: str,
        tags: Dict[str, str],
        iops: Optional[int] = None,
        throughput: Optional[int] = None,
    ) -> str:
        params: Dict[str, Any] = {
            "SnapshotId": snapshot_id,
            "AvailabilityZone": availability_zone,
            "VolumeType": volume_type,
            "Encrypted": True,
            "KmsKeyId": kms_key_id,
            "TagSpecifications": [{"ResourceType": "volume", "Tags": _tag_list(tags)}],
        }
        if iops is not None:
            params["Iops"] = iops
        if throughput is not None:
            params["Throughput"] = throughput
        resp = self._call("create_volume", **params)
        volume_id = resp.get("VolumeId")
        if not volume_id:
            raise ProviderError("create_volume returned no VolumeId", operation="create_volume")
        return volume_id

    def detach_volume(self, volume_id: str, instance_id: str, device: str) -> None:
        self._call("detach_volume", VolumeId=volume_id, InstanceId=instance_id, Device=device)

    def attach_volume(self, volume_id: str, instance_id: str, device: str) -> None:
        self._call("attach_volume", VolumeId=volume_id, InstanceId=instance_id, Device=device)

    # --------------- Snapshots ---------------
    def create_snapshot(self, volume_id: str, *, description: str, tags: Dict[str, str]) -> str:
        resp = self._call(
            "create_snapshot",
            VolumeId=volume_id,
            Description=description,
            TagSpecifications=[{"ResourceType": "snapshot", "Tags": _tag_list(tags)}],
        )
        snapshot_id = resp.get("SnapshotId")
        if not snapshot_id:
            raise ProviderError("create_snapshot returned no SnapshotId", operation="create_snapshot")
        return snapshot_id

    def snapshot_state(self, snapshot_id: str) -> str:
        resp = self._call("describe_snapshots", SnapshotIds=[snapshot_id])
        snaps = resp.get("Snapshots", [])
        if not snaps or not isinstance(snaps[0].get("State"), str):
            raise ProviderError(f"Snapshot {snapshot_id} has no state", operation="describe_snapshots")
        return snaps[0]["State"]

    def snapshot_exists(self, snapshot_id: str) -> bool:
        try:
            resp = self._call("describe_snapshots", SnapshotIds=[snapshot_id])
        except ResourceNotFoundError:
            return False
        return bool(resp.get("Snapshots"))

    def delete_snapshot(self, snapshot_id: str) -> None:
        self._call("delete_snapshot", SnapshotId=snapshot_id)

    # --------------- Tags ---------------
    def create_tags(self, resource_id: str, tags: Dict[str, str]) -> None:
        self._call("create_tags", Resources=[resource_id], Tags=_tag_list(tags))


__all__ = [
    "Ec2Client",
    "ProviderError",
    "ResourceNotFoundError",
]
