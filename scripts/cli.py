"""
CLI to run one self-assessment session in the terminal -> report JSON.
"""
from __future__ import annotations
import argparse, json, logging, os, threading, time

from core.config import Settings
from core.errors import SessionStateError
from core.finalizer import ReportStore
from core.loop import EventLoop
from core.models import SessionStatus
from core.notify import Notifier
from core.session import CaptureSession, SessionController


def _ask(prompt: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    return input(f"{prompt} [y/N] ").strip().lower() in ("y", "yes")


def _print_notifications(notifier: Notifier, seen: int) -> int:
    for n in list(notifier.history)[seen:]:
        print(f"[{n.level}] {n.title}: {n.text}")
    return len(notifier.history)


def main(argv=None):
    p = argparse.ArgumentParser()
    p.add_argument("--budget", type=int, default=None, help="Recording budget in seconds")
    p.add_argument("--submit-url", default=None, help="Upload endpoint")
    p.add_argument("--yes", action="store_true", help="Skip consent and stop confirmations")
    p.add_argument("--out", default=None, help="Path to write the report JSON")
    p.add_argument("--verbose", action="store_true")
    args = p.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    overrides = {}
    if args.budget is not None:
        overrides["SESSION_BUDGET_SECONDS"] = args.budget
    if args.submit_url:
        overrides["SUBMIT_URL"] = args.submit_url
    settings = Settings(**overrides)

    from core.media import MediaDevices
    from core.submission import RemoteSubmitter

    notifier = Notifier()
    store = ReportStore()
    loop = EventLoop().start()
    devices = MediaDevices(settings)
    submitter = RemoteSubmitter(settings)
    controller = SessionController(
        lambda: CaptureSession(settings, devices, submitter, loop, notifier=notifier, report_store=store),
        loop,
    )

    seen = 0
    try:
        snap = controller.start()
        seen = _print_notifications(notifier, seen)
        if snap.status != SessionStatus.AWAITING_CONSENT:
            return 1

        print("This assessment will record: video, audio, facial expressions, speech analysis.")
        snap = controller.consent(_ask("Start assessment?", args.yes))
        seen = _print_notifications(notifier, seen)
        if snap.status != SessionStatus.RECORDING:
            return 1

        print(f"Recording for up to {settings.SESSION_BUDGET_SECONDS}s. Press Enter to stop.")
        stop_requested = threading.Event()

        def _wait_for_enter():
            try:
                input()
            except EOFError:
                return
            stop_requested.set()

        threading.Thread(target=_wait_for_enter, daemon=True).start()

        while True:
            snap = controller.snapshot()
            if snap.status == SessionStatus.TERMINATED:
                break
            if snap.status == SessionStatus.RECORDING:
                print(f"\rTime: {snap.remaining_seconds // 60}:{snap.remaining_seconds % 60:02d}  "
                      f"Expression: {snap.expression or '-'}  Words: {snap.total_words}  "
                      f"WPM: {snap.wpm}   ", end="", flush=True)
                if stop_requested.is_set():
                    stop_requested.clear()
                    if _ask("\nStop recording?", args.yes):
                        controller.stop(True)
                    else:
                        threading.Thread(target=_wait_for_enter, daemon=True).start()
            time.sleep(0.25)
        print()
        seen = _print_notifications(notifier, seen)
    except SessionStateError as e:
        print(f"Session error: {e}")
        return 1
    except KeyboardInterrupt:
        controller.reset()
        print("\nSession abandoned.")
        return 130
    finally:
        loop.close()

    report = store.take()
    if report is None:
        return 1
    print(json.dumps(report, indent=2, ensure_ascii=False))

    if args.out:
        os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
        with open(args.out, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
        print(f"✅ Report written to {args.out}")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
