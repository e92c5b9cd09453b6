# rollcall/main.py
"""
Rollcall - Main Entry Point.

File điều phối: kết nối camera, extractor, database, web dashboard.

Usage:
    python -m rollcall.main live                       # Điểm danh (profile default)
    python -m rollcall.main live --profile lowlight    # Phòng thiếu sáng
    python -m rollcall.main enroll --name "An" --group "10A1"
    python -m rollcall.main serve                      # Chỉ chạy web dashboard
    python -m rollcall.main list
"""
import os
import sys
import threading
import logging
import argparse
from dataclasses import asdict

# === SETUP DISPLAY TRƯỚC KHI IMPORT CV2 ===
if os.environ.get("DISPLAY", "") == "":
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from .core import settings, create_camera
from .core.errors import AcquisitionError, ModelLoadError, RollcallError
from .core.model_factory import ExtractorService, create_extractor
from .core.profiles import PROFILES, DetectorProfile
from .data.database import AttendanceStore
from .processing import (
    CaptureWorkflow,
    DisplayHandler,
    HighlightTimer,
    LiveRecognizer,
    MatchEngine,
    QualityGate,
    QualityThresholds,
    RecognitionDebouncer,
    WorkflowStep,
)
from .web.feed import DashboardFeed
from .web.server import create_app, get_local_ip, run_server

logger = logging.getLogger(__name__)

WINDOW_NAME = "Rollcall"

# Phím số -> profile khi đang live
PROFILE_KEYS = {
    ord('1'): DetectorProfile.DEFAULT,
    ord('2'): DetectorProfile.FAST,
    ord('3'): DetectorProfile.SENSITIVE,
    ord('4'): DetectorProfile.LOWLIGHT,
    ord('5'): DetectorProfile.MULTI,
}


def setup_logging(verbose: bool = False):
    """File + console trên Pi, console ở nơi khác."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers = [logging.StreamHandler()]
    if settings.IS_PI:
        handlers.insert(0, logging.FileHandler('rollcall.log', encoding='utf-8'))
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog='rollcall',
        description='Rollcall - Face Recognition Attendance',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rollcall live --profile fast --threshold 0.7
  rollcall enroll --name "Nguyen Van An" --group 10A1
  rollcall serve --port 8080
        """
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose logging')
    parser.add_argument('--db', metavar='PATH', help=f'SQLite database (default: {settings.DB_PATH})')

    sub = parser.add_subparsers(dest='command', required=True)

    def add_camera_args(p):
        p.add_argument('--camera', '-c', type=int, metavar='ID',
                       help=f'Camera device ID (default: {settings.CAMERA_DEVICE})')
        p.add_argument('--resolution', '-r', type=str, metavar='WxH',
                       help=f'Camera resolution (default: {settings.CAMERA_WIDTH}x{settings.CAMERA_HEIGHT})')
        p.add_argument('--headless', action='store_true', help='Run in headless mode (no GUI)')
        p.add_argument('--gui', action='store_true', help='Force GUI mode (even on Pi)')

    live = sub.add_parser('live', help='Nhận diện + điểm danh')
    add_camera_args(live)
    live.add_argument('--profile', choices=[p.value for p in PROFILES if p is not DetectorProfile.ENROLLMENT],
                      help=f'Detector profile (default: {settings.DETECTOR_PROFILE})')
    live.add_argument('--threshold', '-t', type=float, metavar='VALUE',
                      help=f'Recognition threshold (default: {settings.RECOGNITION_THRESHOLD})')
    live.add_argument('--cooldown', type=float, metavar='SECONDS',
                      help=f'Cooldown giữa hai lần ghi (default: {settings.COOLDOWN_SECONDS}s)')
    live.add_argument('--no-web', action='store_true', help='Disable web server')
    live.add_argument('--port', '-p', type=int, metavar='PORT',
                      help=f'Web server port (default: {settings.WEB_PORT})')

    enroll = sub.add_parser('enroll', help='Đăng ký học sinh mới')
    add_camera_args(enroll)
    enroll.add_argument('--name', help='Tên học sinh')
    enroll.add_argument('--group', help='Lớp')
    enroll.add_argument('--school', metavar='ID', help=f'School ID (default: {settings.SCHOOL_ID})')
    enroll.add_argument('--frames', type=int, metavar='N',
                        help=f'Số frame đạt liên tiếp (default: {settings.REQUIRED_GOOD_FRAMES})')

    serve = sub.add_parser('serve', help='Chỉ chạy web dashboard')
    serve.add_argument('--port', '-p', type=int, metavar='PORT',
                       help=f'Web server port (default: {settings.WEB_PORT})')

    sub.add_parser('list', help='Liệt kê học sinh đã đăng ký')

    remove = sub.add_parser('remove', help='Xóa học sinh')
    remove.add_argument('student_id')

    return parser.parse_args(argv)


def apply_arguments(args):
    """Apply command line arguments to settings."""
    changes = []

    if args.db:
        settings.DB_PATH = args.db
        changes.append(f"Database: {args.db}")

    if getattr(args, 'camera', None) is not None:
        settings.CAMERA_DEVICE = args.camera
        changes.append(f"Camera: {args.camera}")

    if getattr(args, 'resolution', None):
        try:
            w, h = map(int, args.resolution.lower().split('x'))
            settings.CAMERA_WIDTH = w
            settings.CAMERA_HEIGHT = h
            changes.append(f"Resolution: {w}x{h}")
        except ValueError:
            print(f"⚠️ Invalid resolution format: {args.resolution} (use WxH, e.g., 640x480)")

    if getattr(args, 'headless', False):
        settings.HEADLESS_MODE = True
        settings.OVERLAY_ENABLED = False
        changes.append("Mode: headless")
    if getattr(args, 'gui', False):
        settings.FORCE_GUI_MODE = True
        settings.HEADLESS_MODE = False
        settings.OVERLAY_ENABLED = True
        changes.append("Mode: GUI (forced)")

    if getattr(args, 'profile', None):
        settings.DETECTOR_PROFILE = args.profile
        changes.append(f"Profile: {args.profile}")
    if getattr(args, 'threshold', None) is not None:
        settings.RECOGNITION_THRESHOLD = args.threshold
        changes.append(f"Threshold: {args.threshold}")
    if getattr(args, 'cooldown', None) is not None:
        settings.COOLDOWN_SECONDS = args.cooldown
        changes.append(f"Cooldown: {args.cooldown}s")

    if getattr(args, 'no_web', False):
        settings.ENABLE_WEB_SERVER = False
        changes.append("Web: disabled")
    if getattr(args, 'port', None):
        settings.WEB_PORT = args.port
        changes.append(f"Port: {args.port}")

    if getattr(args, 'school', None):
        settings.SCHOOL_ID = args.school
        changes.append(f"School: {args.school}")
    if getattr(args, 'frames', None):
        settings.REQUIRED_GOOD_FRAMES = args.frames
        changes.append(f"Required frames: {args.frames}")

    if args.verbose:
        changes.append("Verbose: ON")

    return changes


def print_startup_info(store, mode: str):
    """In thông tin khởi động."""
    print("\n" + "=" * 50)
    print("📋 ROLLCALL - ĐIỂM DANH KHUÔN MẶT")
    print("=" * 50)
    print(f"📍 Mode: {mode}")
    print(f"👥 Database: {len(store.list_identities())} học sinh ({settings.DB_PATH})")

    if mode == "live":
        print(f"🧠 Profile: {settings.DETECTOR_PROFILE}")
        print(f"🎯 Threshold: {settings.RECOGNITION_THRESHOLD}")
        print(f"⏱️ Cooldown: {settings.COOLDOWN_SECONDS}s")
        if settings.ENABLE_WEB_SERVER:
            print(f"🌐 Web: http://{get_local_ip()}:{settings.WEB_PORT}")
        print("-" * 50)
        if not settings.HEADLESS_MODE:
            print("⌨️  1-5=đổi profile | q=thoát")
        else:
            print("⌨️  Ctrl+C để thoát")
    elif mode == "enroll":
        print(f"📸 Cần {settings.REQUIRED_GOOD_FRAMES} frame đạt chuẩn liên tiếp")
        print("-" * 50)
        print("⌨️  q=hủy" if not settings.HEADLESS_MODE else "⌨️  Ctrl+C để hủy")
    print("=" * 50 + "\n")


def _make_service():
    return ExtractorService(lambda profile: create_extractor(profile, settings))


def start_web_server(store, feed):
    """Chạy web server trong daemon thread."""
    app = create_app(store, feed)
    thread = threading.Thread(
        target=run_server,
        kwargs={'app': app, 'port': settings.WEB_PORT},
        daemon=True
    )
    thread.start()
    return thread


# === LIVE ===

def run_live(store) -> int:
    feed = DashboardFeed()
    feed.profile = settings.DETECTOR_PROFILE

    if settings.ENABLE_WEB_SERVER:
        start_web_server(store, feed)

    display = DisplayHandler(overlay_enabled=settings.OVERLAY_ENABLED)
    service = _make_service()
    recognizer = LiveRecognizer(
        camera=create_camera(settings),
        service=service,
        store=store,
        notifier=feed,
        engine=MatchEngine(settings.recognition_threshold),
        debouncer=RecognitionDebouncer(settings.cooldown_ms),
        highlight_timer=HighlightTimer(feed.clear_highlight, timeout=settings.highlight_seconds),
    )

    def on_frame(live, match):
        if not display.enabled:
            return
        frame = live.frame.copy()
        if live.last_observation is not None:
            display.draw_match(frame, live.last_observation.box, match or live.last_match)
        highlight = feed.current_highlight
        if highlight:
            display.draw_banner(frame, f"{highlight['name']} ({highlight['group']})")
        stats = live.get_stats()
        if stats is not None:
            display.draw_stats(frame, dict(asdict(stats), profile=feed.profile))

        key = display.show(WINDOW_NAME, frame)
        if key == ord('q'):
            live.stop()
        elif key in PROFILE_KEYS:
            profile = PROFILE_KEYS[key]
            feed.profile = profile.value
            live.switch_profile(profile)

    print_startup_info(store, "live")
    try:
        recognizer.start(settings.DETECTOR_PROFILE)
        recognizer.run(on_frame=on_frame)
    except (AcquisitionError, ModelLoadError) as e:
        print(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        print("\n👋 Đang thoát...")
    finally:
        recognizer.stop()
        service.dispose()
        display.destroy_windows()
    return 0


# === ENROLL ===

def _prompt(label: str, value=None) -> str:
    if value:
        return value
    return input(f"{label}: ").strip()


def run_enroll(store, args) -> int:
    display = DisplayHandler(overlay_enabled=settings.OVERLAY_ENABLED)
    service = _make_service()
    workflow = CaptureWorkflow(
        camera=create_camera(settings),
        service=service,
        store=store,
        gate=QualityGate(QualityThresholds.from_settings(settings), settings.required_good_frames),
        profile=DetectorProfile.ENROLLMENT,
        school_id=settings.SCHOOL_ID,
    )

    last_feedback = []

    def on_frame(wf, result):
        if result is not None and (not last_feedback or last_feedback[-1] is not result.feedback):
            last_feedback.append(result.feedback)
            logger.info(f"➡️ {result.feedback.value} ({wf.gate.state.count}/{wf.gate.required_frames})")
        if not display.enabled or wf.frame is None:
            return
        frame = wf.frame.copy()
        observation = wf.gate.state.last_good
        display.draw_gate(frame, observation, wf.feedback, wf.progress)
        if display.show(WINDOW_NAME, frame) == ord('q'):
            wf.request_stop()

    print_startup_info(store, "enroll")
    try:
        workflow.set_form(_prompt("Tên học sinh", args.name), _prompt("Lớp", args.group))
        if not workflow.start_capture():
            print(f"❌ {workflow.error}")
            return 1

        while True:
            step = workflow.run_capture(on_frame=on_frame)
            display.destroy_windows()
            if step is not WorkflowStep.CONFIRM:
                print(f"❌ {workflow.error or 'Đã hủy'}")
                return 1

            while workflow.step is WorkflowStep.CONFIRM:
                choice = input("Lưu? [y]=lưu / [r]=chụp lại / [n]=bỏ: ").strip().lower()
                if choice in ('', 'y'):
                    identity = workflow.confirm()
                    if identity is not None:
                        print(f"   ✅ Đã đăng ký: {identity.name} ({identity.group}) id={identity.id}")
                        return 0
                    print(f"   ❌ {workflow.error}")
                elif choice == 'r':
                    if not workflow.retry():
                        print(f"❌ {workflow.error}")
                        return 1
                elif choice == 'n':
                    workflow.discard()
                    print("   Đã bỏ.")
                    return 1
    except KeyboardInterrupt:
        print("\n👋 Đã hủy")
        return 1
    finally:
        workflow.close()
        service.dispose()
        display.destroy_windows()


# === OTHER COMMANDS ===

def run_list(store) -> int:
    identities = store.list_identities()
    print("\n📋 Database:")
    if not identities:
        print("   (trống)")
    for i, identity in enumerate(identities, 1):
        print(f"   {i}. {identity.name} ({identity.group}) - {identity.id} [{identity.descriptor_model}]")
    print()
    return 0


def run_remove(store, student_id: str) -> int:
    if store.remove_identity(student_id):
        print(f"   ✅ Đã xóa: {student_id}")
        return 0
    print(f"   ❌ Không tìm thấy: {student_id}")
    return 1


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)
    arg_changes = apply_arguments(args)

    if arg_changes:
        print("🔧 Command-line overrides:")
        for change in arg_changes:
            print(f"   • {change}")
        print()

    try:
        store = AttendanceStore(settings.resolve_path(settings.DB_PATH))

        if args.command == 'live':
            return run_live(store)
        if args.command == 'enroll':
            return run_enroll(store, args)
        if args.command == 'serve':
            run_server(create_app(store, DashboardFeed()), port=settings.WEB_PORT)
            return 0
        if args.command == 'list':
            return run_list(store)
        if args.command == 'remove':
            return run_remove(store, args.student_id)
    except RollcallError as e:
        logger.error(f"❌ {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
