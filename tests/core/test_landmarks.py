import numpy as np
import pytest

from posetrace.core.landmarks import (
    BODY_SEGMENTS,
    LANDMARK_NAMES,
    NUM_LANDMARKS,
    POSE_CONNECTIONS,
    ROI_KEY_LANDMARKS,
    as_landmark_array,
    empty_landmarks,
    filter_connections,
    landmark_index,
    landmark_name,
    landmarks_from_points,
)


def test_registry_shape():
    assert len(LANDMARK_NAMES) == NUM_LANDMARKS == 33
    assert LANDMARK_NAMES[0] == "nose"
    assert LANDMARK_NAMES[32] == "right_foot_index"
    assert landmark_index("left_hip") == 23
    assert landmark_name(28) == "right_ankle"
    assert all(0 <= a < 33 and 0 <= b < 33 for a, b in POSE_CONNECTIONS)
    assert sorted(ROI_KEY_LANDMARKS) == [0, 11, 12, 13, 14, 23, 24]


def test_segment_weights():
    weights = {s.name: s.weight for s in BODY_SEGMENTS}
    assert weights["head"] == 8.26
    assert weights["torso"] == 48.33
    assert len(BODY_SEGMENTS) == 14
    assert sum(weights.values()) == pytest.approx(99.83)
    assert set(BODY_SEGMENTS[0].indices) == set(range(11))


def test_unknown_name_and_index():
    with pytest.raises(KeyError):
        landmark_index("tail")
    with pytest.raises(IndexError):
        landmark_name(33)


def test_landmarks_from_points_fills_visibility_and_absent_slots():
    arr = landmarks_from_points([(0.1, 0.2, 0.3), None, (0.4, 0.5, 0.6, 0.7)])
    assert arr.shape == (33, 4)
    assert arr[0].tolist() == [0.1, 0.2, 0.3, 1.0]
    assert np.isnan(arr[1]).all()
    assert arr[2, 3] == 0.7
    assert np.isnan(arr[3:]).all()


def test_as_landmark_array_rejects_empty():
    assert as_landmark_array(None) is None
    assert as_landmark_array([]) is None
    out = as_landmark_array(np.ones((33, 3)))
    assert out is not None
    assert (out[:, 3] == 1.0).all()
    assert np.isnan(empty_landmarks()).all()


def test_filter_connections():
    assert filter_connections([]) == list(POSE_CONNECTIONS)
    arm = filter_connections([11, 13, 15])
    assert (11, 13) in arm
    assert (13, 15) in arm
    assert all(a in {11, 13, 15} and b in {11, 13, 15} for a, b in arm)
