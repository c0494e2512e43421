#!/usr/bin/env python3
"""Command-line scan of a record image.
Prints the OCR text, extracted fields, QC results and confidence as JSON,
and with --save persists the record for the given doctor.
"""
import argparse
import asyncio
import dataclasses
import json
import mimetypes
import sys
from pathlib import Path

from config.settings import load_settings
from doctor_session import SessionManager
from errors import MedScanError, OCRError
from record_workflow import RecordWorkflow, setup_logging


async def run(args, settings) -> int:
    if args.no_enhance:
        settings = dataclasses.replace(settings, enhance_enabled=False)
    if args.lang:
        settings = dataclasses.replace(settings, ocr_lang=args.lang)

    sessions = SessionManager()
    if args.doctor_id:
        sessions.sign_in(args.doctor_id, args.doctor_name or "")

    workflow = RecordWorkflow(sessions, settings=settings)
    data = Path(args.input_path).read_bytes()
    content_type, _ = mimetypes.guess_type(args.input_path)

    try:
        scan = await workflow.scan(data, content_type)
    except OCRError as e:
        if args.fail_on_empty:
            print(f"No text extracted: {e}", file=sys.stderr)
            return 4
        print(json.dumps({"error": str(e), "text": "", "fields": None}, indent=2))
        return 2

    result = scan.to_dict()
    code = 0
    if args.save:
        outcome = await workflow.save_scan(scan)
        result["save"] = outcome.to_dict()
        if not outcome.ok:
            code = 5

    print(json.dumps(result, indent=2))
    return code


def main():
    p = argparse.ArgumentParser(description="Scan a paper medical record into structured fields")
    p.add_argument('input_path', help='Path to the record image')
    p.add_argument('--no-enhance', action='store_true', help='skip the remote enhancement call')
    p.add_argument('--save', action='store_true', help='persist the extracted record')
    p.add_argument('--doctor-id', dest='doctor_id', help='signed-in doctor id (required with --save)')
    p.add_argument('--doctor-name', dest='doctor_name', help='signed-in doctor name')
    p.add_argument('--lang', help='Tesseract language code (default: OCR_LANG or eng)')
    p.add_argument('--debug', action='store_true', help='debug logging')
    p.add_argument('--fail-on-empty', action='store_true', help='exit non-zero if no text was extracted')
    args = p.parse_args()

    if args.save and not args.doctor_id:
        p.error('--save requires --doctor-id')

    if not Path(args.input_path).exists():
        print("Input file not found", file=sys.stderr)
        sys.exit(1)

    try:
        settings = load_settings()
        setup_logging("DEBUG" if args.debug else settings.log_level, settings.log_dir)
        sys.exit(asyncio.run(run(args, settings)))
    except MedScanError as e:
        print(f"Processing failed: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == '__main__':
    main()
