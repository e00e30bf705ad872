from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import settings
from app.integrations.coze import load_coze_config
from app.services.file_payloads import resolve_mime
from app.services.workflow_service import DEFAULT_JD_MIME, DEFAULT_RESUME_MIME, WorkflowService
from app.services.workflow_types import ExecutionState, SubmissionKind


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the resume/JD match workflow and print the report.")
    parser.add_argument("--resume", required=True, help="Path to the resume PDF")
    parser.add_argument("--jd", required=True, help="Path to the job description image")
    parser.add_argument("--content", default=None, help="Instruction text passed to the workflow")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.poll_interval_s,
        help="Seconds between status checks while the workflow is running.",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=settings.poll_max_attempts,
        help="Give up after this many status checks (0 = keep polling).",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s %(message)s")

    resume_path = Path(args.resume)
    jd_path = Path(args.jd)
    resume_bytes = resume_path.read_bytes()
    jd_bytes = jd_path.read_bytes()

    service = WorkflowService(load_coze_config())
    try:
        outcome = service.submit(
            resume_bytes,
            resume_path.name,
            jd_bytes,
            jd_path.name,
            args.content,
            resume_mime=resolve_mime(None, content=resume_bytes, default=DEFAULT_RESUME_MIME),
            jd_mime=resolve_mime(None, content=jd_bytes, default=DEFAULT_JD_MIME),
        )
        if outcome.kind is SubmissionKind.ERROR:
            print(f"error [{outcome.error_code}]: {outcome.error_message}", file=sys.stderr)
            if outcome.debug_url:
                print(f"debug: {outcome.debug_url}", file=sys.stderr)
            return 1

        if outcome.kind is SubmissionKind.SUCCESS:
            print(outcome.output)
            return 0

        print(f"started execute_id={outcome.execute_id}", file=sys.stderr)
        result = service.wait(outcome.execute_id or "", interval_s=args.interval, max_attempts=args.max_attempts)
        if result.state is ExecutionState.SUCCESS:
            print(result.output)
            return 0
        print(f"{result.state.value.lower()} [{result.error_code}]: {result.error_message}", file=sys.stderr)
        if result.debug_url:
            print(f"debug: {result.debug_url}", file=sys.stderr)
        return 1
    finally:
        service.close()


if __name__ == "__main__":
    sys.exit(main())
