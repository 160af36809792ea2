from __future__ import annotations

import os
import sys
from typing import Any, Dict, List, Optional, Tuple

import pytest
from botocore.exceptions import ClientError


def pytest_configure():
    # Ensure `src/` is importable as top-level for `common.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


INSTANCE_ID = "i-0123456789abcdef0"


class FakeEc2:
    """In-memory stand-in for a boto3 EC2 client; records every call."""

    def __init__(self, *, instance_id: str = INSTANCE_ID, state: str = "running") -> None:
        self.instance_id = instance_id
        self.instances: Dict[str, Dict[str, Any]] = {
            instance_id: {"InstanceId": instance_id, "State": {"Name": state}, "BlockDeviceMappings": []}
        }
        self.volumes: Dict[str, Dict[str, Any]] = {}
        self.snapshots: Dict[str, List[str]] = {}
        self.snapshot_progress: List[str] = ["pending", "completed"]
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.fail: Dict[str, str] = {}
        self._seq = 0

    # -------- Test helpers --------
    def add_volume(
        self,
        volume_id: str,
        *,
        device: Optional[str],
        encrypted: bool = False,
        delete_on_termination: bool = True,
        volume_type: str = "gp3",
        az: str = "us-east-1a",
        iops: Optional[int] = 3000,
        throughput: Optional[int] = 125,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        vol: Dict[str, Any] = {
            "VolumeId": volume_id,
            "AvailabilityZone": az,
            "VolumeType": volume_type,
            "Encrypted": encrypted,
            "Size": 8,
            "State": "in-use" if device else "available",
            "Attachments": [],
            "Tags": [{"Key": k, "Value": v} for k, v in (tags or {}).items()],
        }
        if iops is not None:
            vol["Iops"] = iops
        if throughput is not None:
            vol["Throughput"] = throughput
        self.volumes[volume_id] = vol
        bdm: Dict[str, Any] = {"Ebs": {"VolumeId": volume_id, "DeleteOnTermination": delete_on_termination}}
        if device:
            vol["Attachments"].append(
                {
                    "InstanceId": self.instance_id,
                    "Device": device,
                    "DeleteOnTermination": delete_on_termination,
                    "State": "attached",
                }
            )
            bdm["DeviceName"] = device
        self.instances[self.instance_id]["BlockDeviceMappings"].append(bdm)

    def ops(self, *names: str) -> List[str]:
        return [op for op, _ in self.calls if not names or op in names]

    def kwargs_of(self, op: str) -> List[Dict[str, Any]]:
        return [kw for name, kw in self.calls if name == op]

    def tags_of(self, volume_id: str) -> Dict[str, str]:
        return {t["Key"]: t["Value"] for t in self.volumes[volume_id].get("Tags", [])}

    @property
    def instance_state(self) -> str:
        return self.instances[self.instance_id]["State"]["Name"]

    # -------- Internals --------
    def _record(self, op: str, kwargs: Dict[str, Any]) -> None:
        self.calls.append((op, kwargs))
        code = self.fail.get(op)
        if code:
            raise ClientError({"Error": {"Code": code, "Message": f"{op} failed"}}, op)

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}-{self._seq:04d}"

    @staticmethod
    def _not_found(kind: str, op: str) -> ClientError:
        return ClientError({"Error": {"Code": f"{kind}.NotFound", "Message": "not found"}}, op)

    # -------- boto3 surface --------
    def describe_instances(self, **kw):
        self._record("describe_instances", kw)
        out = []
        for iid in kw["InstanceIds"]:
            if iid not in self.instances:
                raise self._not_found("InvalidInstanceID", "DescribeInstances")
            out.append(self.instances[iid])
        return {"Reservations": [{"Instances": out}]}

    def describe_volumes(self, **kw):
        self._record("describe_volumes", kw)
        out = []
        for vid in kw["VolumeIds"]:
            if vid not in self.volumes:
                raise self._not_found("InvalidVolume", "DescribeVolumes")
            out.append(self.volumes[vid])
        # EC2 does not promise request order
        return {"Volumes": list(reversed(out))}

    def create_snapshot(self, **kw):
        self._record("create_snapshot", kw)
        sid = self._next_id("snap")
        self.snapshots[sid] = list(self.snapshot_progress)
        return {"SnapshotId": sid, "State": "pending"}

    def describe_snapshots(self, **kw):
        self._record("describe_snapshots", kw)
        sid = kw["SnapshotIds"][0]
        if sid not in self.snapshots:
            raise self._not_found("InvalidSnapshot", "DescribeSnapshots")
        states = self.snapshots[sid]
        state = states.pop(0) if len(states) > 1 else states[0]
        return {"Snapshots": [{"SnapshotId": sid, "State": state}]}

    def delete_snapshot(self, **kw):
        self._record("delete_snapshot", kw)
        if kw["SnapshotId"] not in self.snapshots:
            raise self._not_found("InvalidSnapshot", "DeleteSnapshot")
        del self.snapshots[kw["SnapshotId"]]
        return {}

    def create_volume(self, **kw):
        self._record("create_volume", kw)
        vid = self._next_id("vol-enc")
        tags = kw.get("TagSpecifications", [{}])[0].get("Tags", [])
        self.volumes[vid] = {
            "VolumeId": vid,
            "AvailabilityZone": kw["AvailabilityZone"],
            "VolumeType": kw["VolumeType"],
            "Encrypted": kw.get("Encrypted", False),
            "KmsKeyId": kw.get("KmsKeyId"),
            "State": "available",
            "Attachments": [],
            "Tags": list(tags),
        }
        return {"VolumeId": vid, "State": "creating"}

    def stop_instances(self, **kw):
        self._record("stop_instances", kw)
        self.instances[kw["InstanceIds"][0]]["State"]["Name"] = "stopped"
        return {}

    def start_instances(self, **kw):
        self._record("start_instances", kw)
        self.instances[kw["InstanceIds"][0]]["State"]["Name"] = "running"
        return {}

    def detach_volume(self, **kw):
        self._record("detach_volume", kw)
        vol = self.volumes[kw["VolumeId"]]
        vol["State"] = "available"
        vol["Attachments"] = []
        inst = self.instances[kw["InstanceId"]]
        inst["BlockDeviceMappings"] = [
            b for b in inst["BlockDeviceMappings"] if b["Ebs"]["VolumeId"] != kw["VolumeId"]
        ]
        return {}

    def attach_volume(self, **kw):
        self._record("attach_volume", kw)
        vol = self.volumes[kw["VolumeId"]]
        vol["State"] = "in-use"
        vol["Attachments"] = [{"InstanceId": kw["InstanceId"], "Device": kw["Device"], "State": "attached"}]
        self.instances[kw["InstanceId"]]["BlockDeviceMappings"].append(
            {"DeviceName": kw["Device"], "Ebs": {"VolumeId": kw["VolumeId"], "DeleteOnTermination": False}}
        )
        return {}

    def modify_instance_attribute(self, **kw):
        self._record("modify_instance_attribute", kw)
        return {}

    def create_tags(self, **kw):
        self._record("create_tags", kw)
        for rid in kw["Resources"]:
            vol = self.volumes.get(rid)
            if vol is not None:
                vol.setdefault("Tags", []).extend(kw["Tags"])
        return {}


@pytest.fixture
def fake_ec2() -> FakeEc2:
    return FakeEc2()


@pytest.fixture
def ec2(fake_ec2: FakeEc2):
    from common.ec2 import Ec2Client

    return Ec2Client(client=fake_ec2)


@pytest.fixture
def ctx():
    from state.models import RunContext

    return RunContext(region="us-east-1", instance_id=INSTANCE_ID, kms_key_id="alias/ebs-key")


@pytest.fixture
def policy():
    from common.polling import RetryPolicy

    return RetryPolicy(interval=0.01)


@pytest.fixture
def no_sleep():
    slept: List[float] = []
    return slept.append
