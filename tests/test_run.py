import csv
import json
import logging
import signal

import numpy as np
import pytest
from unittest.mock import patch

import cv2

from board_pose.frame_source import CameraStream
from board_pose.config import PoseConfig
from board_pose.run import build_sinks, main
from board_pose.sinks import CsvPoseSink, LogPoseSink, NullSink

needs_sigusr1 = pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="SIGUSR1 not available")


def _write_setup(tmp_path, image, **overrides):
    images = tmp_path / "images"
    images.mkdir()
    cv2.imwrite(str(images / "f0001.png"), image)

    h, w = image.shape[:2]
    calib = tmp_path / "calib.yml"
    fs = cv2.FileStorage(str(calib), cv2.FILE_STORAGE_WRITE)
    fs.write("camera_matrix", np.array([[600.0, 0, w / 2.0], [0, 600.0, h / 2.0], [0, 0, 1]]))
    fs.write("dist_coeffs", np.zeros((1, 5)))
    fs.release()

    raw = {
        "node_name": "cli",
        "skip_frames": 0,
        "request_timeout_s": 2.0,
        "source": {
            "type": "images",
            "image_dir": str(images),
            "calibration_path": str(calib),
            "frame_id": "cam_optical",
        },
    }
    raw.update(overrides)
    cfg = tmp_path / "pose.json"
    cfg.write_text(json.dumps(raw), encoding="utf-8")
    return cfg


def test_query_prints_pose(tmp_path, board_image, capsys):
    cfg = _write_setup(tmp_path, board_image)
    pose_file = tmp_path / "pose.yml"

    rc = main(["--config", str(cfg), "--query", "--node-name", "cli_query", "--pose-file", str(pose_file)])

    assert rc == 0
    out = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert abs(out["position"]["z"] - 0.45) < 0.01
    q = out["orientation"]
    assert abs(np.linalg.norm([q["x"], q["y"], q["z"], q["w"]]) - 1.0) < 1e-6
    assert pose_file.exists()


def test_query_times_out_on_blank_images(tmp_path):
    blank = np.full((200, 200), 255, np.uint8)
    cfg = _write_setup(tmp_path, blank, request_timeout_s=0.05)

    assert main(["--config", str(cfg), "--query"]) == 1


def test_continuous_mode_publishes_to_csv(tmp_path, board_image):
    cfg = _write_setup(tmp_path, board_image, skip_frames=1)
    out_csv = tmp_path / "tf.csv"

    def _spin_one(self, stop_event, rate_hz=None, on_tick=None):
        self.spin_once()

    with patch.object(CameraStream, "spin", _spin_one):
        rc = main(["--config", str(cfg), "--transform-csv", str(out_csv), "--camera-pose"])

    assert rc == 0
    rows = list(csv.reader(out_csv.open()))
    kinds = [row[1] for row in rows[1:]]
    assert kinds == ["transform", "marker"]
    # in camera-pose mode the child frame is the camera's own frame
    assert rows[1][3] == "cam_optical"


def _last_json(capsys):
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


@needs_sigusr1
def test_manual_mode_answers_signalled_request(tmp_path, board_image, capsys):
    cfg = _write_setup(tmp_path, board_image, skip_frames=0)
    seen = []

    def _spin(self, stop_event, rate_hz=None, on_tick=None):
        seen.append(self.subscriber_count)
        signal.raise_signal(signal.SIGUSR1)
        on_tick()
        seen.append(self.subscriber_count)

    previous = signal.getsignal(signal.SIGUSR1)
    with patch.object(CameraStream, "spin", _spin):
        assert main(["--config", str(cfg)]) == 0

    # idle before and after the request, frames are only read for it
    assert seen == [0, 0]
    out = _last_json(capsys)
    assert abs(out["position"]["z"] - 0.45) < 0.01
    assert signal.getsignal(signal.SIGUSR1) == previous


@needs_sigusr1
def test_continuous_mode_answers_with_stored_pose(tmp_path, board_image, capsys):
    cfg = _write_setup(tmp_path, board_image, skip_frames=1)
    out_csv = tmp_path / "tf.csv"

    def _spin(self, stop_event, rate_hz=None, on_tick=None):
        self.spin_once()
        signal.raise_signal(signal.SIGUSR1)
        on_tick()
        assert self.subscriber_count == 1

    with patch.object(CameraStream, "spin", _spin):
        assert main(["--config", str(cfg), "--transform-csv", str(out_csv)]) == 0

    out = _last_json(capsys)
    rows = list(csv.reader(out_csv.open()))
    assert [float(v) for v in rows[1][4:7]] == pytest.approx(
        [out["position"]["x"], out["position"]["y"], out["position"]["z"]], abs=1e-5
    )


def test_tick_without_request_prints_nothing(tmp_path, board_image, capsys):
    cfg = _write_setup(tmp_path, board_image, skip_frames=0)

    def _spin(self, stop_event, rate_hz=None, on_tick=None):
        on_tick()

    with patch.object(CameraStream, "spin", _spin):
        assert main(["--config", str(cfg)]) == 0

    assert capsys.readouterr().out == ""


@needs_sigusr1
def test_failed_signalled_request_keeps_node_running(tmp_path, capsys, caplog):
    blank = np.full((200, 200), 255, np.uint8)
    cfg = _write_setup(tmp_path, blank, skip_frames=0, request_timeout_s=0.05)
    ticks = []

    def _spin(self, stop_event, rate_hz=None, on_tick=None):
        for _ in range(2):
            signal.raise_signal(signal.SIGUSR1)
            on_tick()
            ticks.append(stop_event.is_set())

    with caplog.at_level(logging.ERROR):
        with patch.object(CameraStream, "spin", _spin):
            assert main(["--config", str(cfg)]) == 0

    assert ticks == [False, False]
    assert caplog.text.count("pose request failed") == 2
    assert capsys.readouterr().out == ""


def test_unknown_request_signal_is_reported(tmp_path, board_image, caplog):
    cfg = _write_setup(tmp_path, board_image, skip_frames=0)

    def _spin(self, stop_event, rate_hz=None, on_tick=None):
        return None

    with caplog.at_level(logging.WARNING):
        with patch.object(CameraStream, "spin", _spin):
            assert main(["--config", str(cfg), "--request-signal", "SIGNOPE"]) == 0

    assert "SIGNOPE is not available" in caplog.text


def test_sinks_collapse_to_null_sink_when_exports_are_disabled():
    cfg = PoseConfig(publish_tf=False, publish_marker=False, transform_csv="unused.csv")
    sinks = build_sinks(cfg, logging.getLogger("board_pose.sinks_test"))
    assert len(sinks) == 1
    assert isinstance(sinks[0], NullSink)


def test_sinks_log_and_write_csv_when_exporting(tmp_path):
    cfg = PoseConfig(transform_csv=str(tmp_path / "tf.csv"))
    sinks = build_sinks(cfg, logging.getLogger("board_pose.sinks_test"))
    try:
        assert [type(s) for s in sinks] == [LogPoseSink, CsvPoseSink]
    finally:
        for s in sinks:
            s.close()
