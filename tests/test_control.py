import pytest

from board_pose.control import FrameThrottle, ModeSwitch, PoseMode


def _admitted(throttle, arrivals=10):
    return [i for i in range(1, arrivals + 1) if throttle.admit()]


def test_skip_three_admits_every_third_arrival():
    throttle = FrameThrottle(3)
    assert _admitted(throttle) == [3, 6, 9]
    assert throttle.frame_count == 10


def test_skip_one_admits_everything():
    assert _admitted(FrameThrottle(1), 5) == [1, 2, 3, 4, 5]


@pytest.mark.parametrize("skip", [0, -1, -5])
def test_non_positive_skip_admits_nothing(skip):
    throttle = FrameThrottle(skip)
    assert _admitted(throttle) == []
    assert not throttle.continuous
    # the counter still advances on rejected arrivals
    assert throttle.frame_count == 10


def test_force_immediate_admits_next_frame():
    throttle = FrameThrottle(0)
    throttle.admit()
    throttle.admit()
    throttle.force_immediate()
    assert throttle.skip_count == 1
    assert throttle.frame_count == 0
    assert throttle.admit()


def test_force_immediate_resets_phase():
    throttle = FrameThrottle(5)
    throttle.admit()
    throttle.admit()
    throttle.force_immediate()
    assert _admitted(throttle, 3) == [1, 2, 3]


def test_mode_defaults_to_target_pose():
    switch = ModeSwitch()
    assert switch.mode is PoseMode.TARGET_RELATIVE_TO_CAMERA
    assert not switch.camera_pose


def test_compute_camera_pose_is_one_way():
    switch = ModeSwitch()
    switch.compute_camera_pose()
    assert switch.camera_pose
    switch.compute_camera_pose()
    assert switch.mode is PoseMode.CAMERA_RELATIVE_TO_TARGET
    with pytest.raises(ValueError):
        switch.set_mode(PoseMode.TARGET_RELATIVE_TO_CAMERA)


def test_set_mode_forward_and_same():
    switch = ModeSwitch(PoseMode.TARGET_RELATIVE_TO_CAMERA)
    switch.set_mode(PoseMode.TARGET_RELATIVE_TO_CAMERA)
    switch.set_mode(PoseMode.CAMERA_RELATIVE_TO_TARGET)
    switch.set_mode(PoseMode.CAMERA_RELATIVE_TO_TARGET)
    assert switch.camera_pose


def test_mode_from_value():
    assert ModeSwitch("camera").camera_pose
