"""
Command-line entry point for the month-end review pipeline.
Usage: python main.py --file <workbook.xlsx> --company <name> --period-end <YYYY-MM-DD> [options]
"""

import argparse
import logging
from pathlib import Path
from review_portal.agents.coordinator_agent import CoordinatorAgent
from review_portal.config import CONFIG, SECTION_PRESETS, LLMBackend, ReportConfig
from review_portal.core.state import STORE
from review_portal.frontend.section_renderer import render_report_html

Path(CONFIG.log_dir).mkdir(exist_ok=True)

# Setup logging
logging.basicConfig(
    level=logging.INFO if not CONFIG.debug_mode else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(Path(CONFIG.log_dir) / 'app.log'),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Month-End Financial Review - workbook to sectioned report'
    )

    # Input
    parser.add_argument(
        '--file', '-f',
        type=str,
        required=True,
        help='Path to the client workbook (.xlsx)'
    )

    parser.add_argument(
        '--company',
        type=str,
        required=True,
        help='Company name shown in the report'
    )

    parser.add_argument(
        '--company-id',
        type=str,
        help='Tenant identifier (defaults to the company name)'
    )

    parser.add_argument(
        '--period-end',
        type=str,
        required=True,
        help='Reporting period end date (YYYY-MM-DD)'
    )

    # Output options
    parser.add_argument(
        '--output', '-o',
        type=str,
        default=str(Path(CONFIG.output_dir) / 'report.html'),
        help='Output HTML file path (default: <output_dir>/report.html)'
    )

    parser.add_argument(
        '--max-tokens',
        type=int,
        default=CONFIG.extraction.max_tokens,
        help='Estimated-token budget for extracted sheet data'
    )

    parser.add_argument(
        '--preset',
        type=str,
        default=CONFIG.report.preset,
        choices=list(SECTION_PRESETS.keys()),
        help='Which report sections the client receives'
    )

    # LLM configuration
    parser.add_argument(
        '--llm-backend',
        type=str,
        choices=[backend.value for backend in LLMBackend],
        help='LLM backend to use (defaults to LLM_BACKEND)'
    )

    parser.add_argument(
        '--llm-model',
        type=str,
        help='LLM model name (defaults per backend)'
    )

    parser.add_argument(
        '--llm-api-key',
        type=str,
        help='API key for LLM backend (if required)'
    )

    # System options
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug mode'
    )

    return parser


def main(argv=None):
    """Main execution entry point."""
    args = build_parser().parse_args(argv)

    input_file = Path(args.file)
    if not input_file.exists():
        logger.error(f"Input file not found: {input_file}")
        return False

    if args.debug:
        CONFIG.debug_mode = True
        logging.getLogger().setLevel(logging.DEBUG)

    llm_settings = {}
    if args.llm_backend:
        llm_settings["backend"] = args.llm_backend
    if args.llm_model:
        llm_settings["model_name"] = args.llm_model
    if args.llm_api_key:
        llm_settings["api_key"] = args.llm_api_key

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    task = {
        "company_id": args.company_id or args.company,
        "company_name": args.company,
        "period_end": args.period_end,
        "file_path": str(input_file),
        "source_file_name": input_file.name,
        "max_tokens": args.max_tokens,
        "report_config": ReportConfig.from_preset(args.preset),
        "llm_settings": llm_settings,
    }

    logger.info(f"Starting review generation for {args.company} ({args.period_end})")
    logger.info(f"Input file: {input_file}")
    logger.info(f"LLM Backend: {llm_settings.get('backend', CONFIG.llm.backend.value)} ({llm_settings.get('model_name', CONFIG.llm.model_name)})")

    coordinator = CoordinatorAgent()
    result = coordinator.execute(task)

    record = STORE.get_report(result.data.get("report_id", "")) if result.data.get("report_id") else None
    if record is not None:
        output_path.write_text(render_report_html(record), encoding="utf-8")

    if not result.success:
        logger.error(f"❌ Report generation failed: {result.error}")
        return False

    logger.info("✅ Report generation completed successfully")

    print("\n" + "="*60)
    print("MONTH-END REVIEW COMPLETE")
    print("="*60)
    print(f"Report ID: {result.data.get('report_id')}")
    print(f"Period: {record.period_label if record else args.period_end}")
    print(f"Sheets: {', '.join(result.data.get('sheets_extracted', []))}")
    if result.data.get("skipped_sheets"):
        print(f"Skipped (budget): {', '.join(result.data['skipped_sheets'])}")
    print(f"Sections: {result.data.get('sections_generated')}")
    print(f"Duration: {result.duration_seconds:.2f} seconds")
    print(f"Output: {output_path}")
    print("="*60 + "\n")

    return True


if __name__ == "__main__":
    import sys
    success = main()
    sys.exit(0 if success else 1)
