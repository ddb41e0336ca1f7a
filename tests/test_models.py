"""
Tests for deployment status models, run IDs and region names.
"""

import pytest
from datetime import datetime

from cdrunner.ids import is_valid_run_id, new_run_id
from cdrunner.models import DeploymentStatus, ErrorInfo, InstancesStatus, human_readable_status
from cdrunner.regions import all_regions, region_display_name


class TestModels:
    """Test conversion of CodeDeploy responses."""

    def test_status_parse(self):
        """Test known and unknown status values."""
        assert DeploymentStatus.parse("InProgress") is DeploymentStatus.IN_PROGRESS
        assert DeploymentStatus.parse("Exploded") is DeploymentStatus.UNKNOWN
        assert DeploymentStatus.parse(None) is DeploymentStatus.UNKNOWN

    def test_human_readable_status(self):
        """Test status display names."""
        assert human_readable_status("InProgress") == "in progress"
        assert human_readable_status("Exploded") == "exploded"

    def test_instances_status(self):
        """Test counters are read from the deployment overview."""
        status = InstancesStatus.from_deployment_info({
            "status": "InProgress",
            "deploymentOverview": {"Succeeded": 2, "Failed": 1, "Pending": 0, "Skipped": 3, "InProgress": 4},
        })
        assert status == InstancesStatus("in progress", 2, 1, 0, 3, 4)

    def test_instances_status_missing(self):
        """Test missing status or overview gives no status."""
        assert InstancesStatus.from_deployment_info(None) is None
        assert InstancesStatus.from_deployment_info({"status": "Queued"}) is None

    def test_error_info(self):
        """Test the trailing dot of error messages is removed."""
        info = {"errorInformation": {"code": "TIMEOUT", "message": "Timed out."}}
        assert ErrorInfo.from_deployment_info(info) == ErrorInfo("TIMEOUT", "Timed out")
        assert ErrorInfo.from_deployment_info({}) is None


class TestIds:
    """Test run ID generation."""

    def test_new_run_id(self):
        """Test generated run IDs are valid."""
        run_id = new_run_id()
        assert is_valid_run_id(run_id)
        assert run_id.startswith("r-")

    def test_run_id_timestamp(self):
        """Test the timestamp part of the run ID."""
        run_id = new_run_id(datetime(2024, 1, 2, 3, 4, 5))
        assert run_id.startswith("r-20240102-030405-")
        assert is_valid_run_id(run_id)

    def test_invalid_run_ids(self):
        """Test malformed run IDs."""
        assert not is_valid_run_id("d-20240101-120000-abcd")
        assert not is_valid_run_id("r-2024-120000-abcd")
        assert not is_valid_run_id("r-20240101-120000-ab")
        assert not is_valid_run_id("r-20240101-120000-ab/d")


class TestRegions:
    """Test region display names."""

    def test_known_region(self):
        """Test known regions have display names."""
        assert region_display_name("eu-central-1") == "EU Central (Frankfurt)"

    def test_unknown_region(self):
        """Test unknown regions fall back to the code."""
        assert region_display_name("mars-north-1") == "mars-north-1"

    def test_all_regions_read_only(self):
        """Test the region table cannot be modified."""
        regions = all_regions()
        assert "us-east-1" in regions
        with pytest.raises(TypeError):
            regions["x"] = "y"
