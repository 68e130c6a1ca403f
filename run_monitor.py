#!/usr/bin/env python3
"""
Run Monitor - Live webcam proctoring session from the command line.

Usage:
    python run_monitor.py <candidate_id>

The candidate may also be given through PROCTOR_CANDIDATE_ID. Configuration
is read from config/monitor_config.json and PROCTOR_* environment variables.
Press Ctrl+C to end the session early.
"""

import logging
import os
import sys
import threading

from detectors import FaceLandmarkAdapter, FrameLoop, ObjectDetectorAdapter, VideoRecorder
from integrity_engine import (
    ConfigurationService, JsonlPersistenceSink, PersistenceDispatcher,
    ProctoringError, ProctoringSession, ThreadingScheduler, format_elapsed
)
from shared_utils.common import setup_logging
from shared_utils.file_utils import ensure_directory_exists


def main() -> int:
    candidate_id = sys.argv[1] if len(sys.argv) > 1 else os.environ.get('PROCTOR_CANDIDATE_ID', '')
    log_level = logging.DEBUG if os.environ.get('PROCTOR_DEBUG') == '1' else logging.INFO
    logger = setup_logging('integrity_engine', level=log_level, log_file=os.environ.get('PROCTOR_LOG_FILE'))
    setup_logging('detectors', level=log_level)

    config = ConfigurationService(os.environ.get('PROCTOR_CONFIG', 'config/monitor_config.json')).load_configuration()

    sink = JsonlPersistenceSink(os.environ.get('PROCTOR_SESSIONS_DIR', 'sessions'))
    dispatcher = PersistenceDispatcher(sink)
    scheduler = ThreadingScheduler()
    recorder = VideoRecorder()

    session = ProctoringSession(config=config, recorder=recorder, persistence=dispatcher, scheduler=scheduler)
    frame_loop = FrameLoop(
        session,
        face_detector=FaceLandmarkAdapter(),
        object_detector=ObjectDetectorAdapter({'model_path': os.environ.get('PROCTOR_YOLO_MODEL', 'yolov8n.pt')}),
        recorder=recorder,
        camera_index=int(os.environ.get('PROCTOR_CAMERA_INDEX', 0))
    )
    session.sources.append(frame_loop)

    finished = threading.Event()
    session.add_event_callback(lambda event: print(f"  [{format_elapsed(event.offset_seconds)}] {event.type_name}"))
    session.add_tick_callback(lambda elapsed: logger.debug(f"{format_elapsed(elapsed)} {session.status}"))
    session.add_report_callback(lambda report: finished.set())

    print("🚀 Exam Integrity Monitor")
    print("=" * 40)

    try:
        session.start(candidate_id)
    except ProctoringError as e:
        print(f"Cannot start session: {e}")
        dispatcher.shutdown()
        scheduler.shutdown()
        return 1

    print(f"Monitoring {session.candidate_id} for {config.session_duration_seconds:.0f}s (Ctrl+C to stop)")
    try:
        while not finished.wait(0.5):
            pass
    except KeyboardInterrupt:
        session.end()

    report = session.get_report()
    if session.recording:
        ensure_directory_exists(sink.candidate_directory(report.candidate_id))
        recording_path = os.path.join(sink.candidate_directory(report.candidate_id), "recording.mp4")
        with open(recording_path, 'wb') as f:
            f.write(session.recording)
        print(f"Recording saved to {recording_path}")

    dispatcher.shutdown()
    scheduler.shutdown()

    print(f"\n✅ Session ended ({report.end_reason.value})")
    print(f"Duration: {report.duration}")
    print(f"Focus lost: {report.focus_lost_count}")
    print(f"Suspicious items: {report.suspicious_item_count}")
    print(f"Drowsiness: {report.drowsiness_count}")
    print(f"Final integrity score: {report.final_score}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
