"""Tests for lifecycle state bookkeeping."""

from __future__ import annotations

import pytest

from atlas_operator.state import (
    LifecycleState,
    get_state,
    observed_generation_for,
    parse_duration,
    ready_for_state,
    reapply_period,
    reapply_timestamp,
    select_state,
    should_reapply,
)


def _state(reason: str, generation: int = 1) -> list[dict]:
    return [{"type": "State", "status": "True", "reason": reason, "observedGeneration": generation}]


class TestGetState:
    """Test cases for get_state."""

    def test_no_conditions_is_initial(self):
        """Test a fresh resource starts in Initial."""
        assert get_state([]) == "Initial"

    def test_reads_reason(self):
        """Test the state is read from the State condition reason."""
        assert get_state(_state("Created")) == "Created"

    def test_unknown_state_returned_as_is(self):
        """Test unknown values are passed through for reporting."""
        assert get_state(_state("Bogus")) == "Bogus"


class TestSelectState:
    """Test cases for select_state."""

    def test_import_annotation_on_initial(self):
        """Test an external annotation turns Initial into ImportRequested."""
        obj = {"metadata": {"annotations": {"mongodb.com/external-id": "abc"}}}

        assert select_state(obj, "Initial") == "ImportRequested"

    def test_import_annotation_ignored_after_initial(self):
        """Test import only applies to resources that were never reconciled."""
        obj = {"metadata": {"annotations": {"mongodb.com/external-id": "abc"}}}

        assert select_state(obj, "Created") == "Created"

    def test_deletion_timestamp_overrides(self):
        """Test a deletion timestamp wins over the recorded state."""
        obj = {"metadata": {"deletionTimestamp": "2024-01-01T00:00:00Z"}}

        assert select_state(obj, "Created") == "DeletionRequested"
        assert select_state(obj, "Initial") == "DeletionRequested"

    def test_deleting_is_kept(self):
        """Test Deleting is not reset to DeletionRequested."""
        obj = {"metadata": {"deletionTimestamp": "2024-01-01T00:00:00Z"}}

        assert select_state(obj, "Deleting") == "Deleting"


class TestObservedGeneration:
    """Test cases for observed_generation_for."""

    def test_no_previous_state(self):
        """Test the current generation is used for a first transition."""
        assert observed_generation_for(3, [], LifecycleState.CREATING) == 3

    def test_carried_edge_keeps_previous_generation(self):
        """Test in-flight edges keep the generation they were entered with."""
        assert observed_generation_for(3, _state("Updating", 2), LifecycleState.UPDATED) == 2
        assert observed_generation_for(3, _state("Creating", 1), LifecycleState.CREATING) == 1

    def test_other_edges_use_current_generation(self):
        """Test a new intent stamps the current generation."""
        assert observed_generation_for(3, _state("Created", 1), LifecycleState.UPDATING) == 3

    def test_unknown_previous_state(self):
        """Test an unknown recorded state falls back to the current generation."""
        assert observed_generation_for(4, _state("Bogus", 1), LifecycleState.UPDATING) == 4


class TestReadyForState:
    """Test cases for ready_for_state."""

    @pytest.mark.parametrize("state", ["Created", "Updated", "Imported"])
    def test_settled_states_are_ready(self, state):
        """Test settled states report Ready."""
        ready, reason, _ = ready_for_state(state)
        assert ready is True
        assert reason == "Settled"

    @pytest.mark.parametrize("state", ["Initial", "ImportRequested", "Creating", "Updating", "Deleting"])
    def test_pending_states_are_not_ready(self, state):
        """Test in-flight states report Pending."""
        ready, reason, _ = ready_for_state(state)
        assert ready is False
        assert reason == "Pending"

    def test_unknown_state(self):
        """Test unknown states report an error."""
        ready, reason, message = ready_for_state("Bogus")
        assert ready is False
        assert reason == "Error"
        assert "Bogus" in message


class TestReapply:
    """Test cases for the reapply annotations."""

    def test_parse_duration(self):
        """Test Go style durations."""
        assert parse_duration("2h") == 7200
        assert parse_duration("90m") == 5400
        assert parse_duration("1h30m") == 5400
        assert parse_duration("45s") == 45

    @pytest.mark.parametrize("value", ["", "abc", "1h foo", "10"])
    def test_parse_duration_invalid(self, value):
        """Test malformed durations are rejected."""
        with pytest.raises(ValueError):
            parse_duration(value)

    def test_reapply_period(self):
        """Test the period annotation."""
        assert reapply_period({}) is None
        assert reapply_period({"mongodb.com/reapply-period": "2h"}) == 7200

    def test_reapply_period_too_short(self):
        """Test periods of 60m or less are rejected."""
        with pytest.raises(ValueError, match="greater than 60m"):
            reapply_period({"mongodb.com/reapply-period": "30m"})

    def test_reapply_timestamp(self):
        """Test the timestamp annotation is in epoch milliseconds."""
        assert reapply_timestamp({}) is None
        assert reapply_timestamp({"mongodb.com/reapply-timestamp": "1500"}) == 1.5
        with pytest.raises(ValueError):
            reapply_timestamp({"mongodb.com/reapply-timestamp": "yesterday"})

    def test_should_reapply(self):
        """Test a reapply is due once the period has elapsed."""
        annotations = {
            "mongodb.com/reapply-period": "2h",
            "mongodb.com/reapply-timestamp": "0",
        }

        assert should_reapply(annotations, now=7000) is False
        assert should_reapply(annotations, now=8000) is True
        assert should_reapply({"mongodb.com/reapply-period": "2h"}, now=8000) is False
