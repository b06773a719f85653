"""
Screen a single resume file from the command line: extract the text, guess
the candidate identity and print the analysis as JSON.

Usage:
    python scripts/parse_resume.py path/to/resume.pdf
    python scripts/parse_resume.py cv.docx --job "React developer with leadership"
"""
import sys
import os
import json
import asyncio
import argparse

# Root project -> sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv
load_dotenv()

from app.core.ai_analyzer import ResumeAnalyzer
from app.utils.candidate_extractor import extract_candidate_info
from app.utils.resume_parser import TextExtractionError, extract_text, resolve_content_type


def main():
    parser = argparse.ArgumentParser(description="Screen a resume and output JSON")
    parser.add_argument("file", help="Path to the resume file (PDF/DOC/DOCX)")
    parser.add_argument("--job", default=None, help="Optional job description to score against")
    args = parser.parse_args()

    if not os.path.exists(args.file):
        print(f"[ERROR] File not found: {args.file}", file=sys.stderr)
        sys.exit(1)

    with open(args.file, "rb") as f:
        content = f.read()

    print(f"[INFO] Extracting text from {args.file}...", file=sys.stderr)
    try:
        text = extract_text(content, resolve_content_type(args.file, None), args.file)
    except TextExtractionError as e:
        print(f"[ERROR] Text extraction failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"[INFO] Text extracted ({len(text)} chars). Analyzing...", file=sys.stderr)
    analysis = asyncio.run(ResumeAnalyzer().analyze(text, args.job))

    result = {
        "candidate": extract_candidate_info("", "", "", text).model_dump(),
        "analysis": analysis.model_dump(),
    }
    print("\n[RESULT]")
    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
