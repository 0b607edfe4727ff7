#!/usr/bin/env python3
"""
Sheet Analyst - Main Entry Point

Usage:
    python main.py analyze payload.json             # Analyze a selected range
    python main.py analyze payload.json --export    # ...and write an .xlsx report
    python main.py scenarios payload.json           # What-if scenarios
    python main.py formula average --address B2:B13  # Formula for an intent
    python main.py formula --validate "=SUM(A1:A9)"  # Screen a formula
    python main.py setup                            # Validate configuration

A payload is the JSON body the add-in sends, e.g.
    {"selectedData": {"address": "Sheet1!A1:B5", "values": [...], "rowCount": 5, "columnCount": 2}}
"""
import os
import sys
import json
import argparse
import logging
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

logger = logging.getLogger(__name__)


def configure_logging():
    """Stream and file logging; level and file from LOG_LEVEL / LOG_FILE."""
    from config.settings import get_config

    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(config.log_file),
        ]
    )


def setup_environment():
    """Load environment variables from .env file if present."""
    env_file = PROJECT_ROOT / '.env'
    if env_file.exists():
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip())


def load_payload(path: str) -> dict:
    with open(path) as f:
        return json.load(f)


def print_result(result: dict):
    print(json.dumps(result, indent=2, default=str))


def cmd_analyze(args):
    """Run one analysis over a payload file."""
    from sheet_analyst.integrations.request_handlers import handle_analyze

    payload = load_payload(args.payload)
    payload["analysisType"] = args.type
    if args.horizon is not None:
        payload["forecastHorizon"] = args.horizon
    if args.narrative:
        payload["includeNarrative"] = True

    if args.export:
        from sheet_analyst.core.error_taxonomy import classify_error

        try:
            export_report(payload)
        except Exception as e:
            classified = classify_error(e, analysis_phase="export")
            logger.error(f"Export failed: {classified.message}")
            print_result({"success": False, "error": classified.to_dict()})
            sys.exit(1)
        return

    logger.info(f"Running {args.type} analysis from {args.payload}")
    result = handle_analyze(payload)
    print_result(result)
    if not result["success"]:
        sys.exit(1)


def export_report(payload: dict):
    """Comprehensive analysis written to an Excel workbook."""
    from config.settings import get_config
    from sheet_analyst.agents.spreadsheet_analyst import get_spreadsheet_analyst
    from sheet_analyst.core.request_schemas import AnalyzeRequest, parse_request
    from sheet_analyst.integrations.request_handlers import load_dataset
    from sheet_analyst.tools.excel_output import get_report_writer

    request = parse_request(AnalyzeRequest, payload)
    dataset = load_dataset(request)
    analyst = get_spreadsheet_analyst()
    report = analyst.deep_analysis(dataset, forecast_horizon=request.forecast_horizon)
    if request.include_narrative:
        analyst.generate_narrative(report)

    writer = get_report_writer(get_config().analysis.report_output_dir)
    output = writer.write(report, dataset, title=dataset.address or "Spreadsheet Analysis")

    print("\n" + "="*60)
    print("ANALYSIS REPORT")
    print("="*60)
    print(f"  Workbook: {output.file_path}")
    print(f"  Sheets: {output.sheet_count}, charts: {output.chart_count}")
    for rec in report.recommendations:
        print(f"  [{rec.priority}] {rec.category}: {rec.message}")
    if report.errors:
        print("\n" + "-"*60)
        print("PARTIAL RESULTS")
        print("-"*60)
        for error in report.errors:
            print(f"  {error.analysis_phase}: {error.user_message}")
    if report.narrative:
        print("\n" + "-"*60)
        print(report.narrative)


def cmd_scenarios(args):
    """Generate and compare what-if scenarios."""
    from sheet_analyst.integrations.request_handlers import handle_whatif_scenarios

    payload = load_payload(args.payload)
    if args.type:
        payload["scenarioType"] = args.type
    result = handle_whatif_scenarios(payload)
    print_result(result)
    if not result["success"]:
        sys.exit(1)


def cmd_formula(args):
    """Generate a formula for an intent, or screen one with --validate."""
    from sheet_analyst.integrations.request_handlers import handle_generate_formula, handle_validate_formula

    if args.validate:
        result = handle_validate_formula({"formula": args.validate})
    else:
        payload = load_payload(args.payload) if args.payload else {}
        payload["intent"] = args.intent
        if args.address:
            payload["address"] = args.address
        result = handle_generate_formula(payload)
    print_result(result)
    if not result["success"]:
        sys.exit(1)


def cmd_setup(args):
    """Validate configuration and setup."""
    from config.settings import get_config, MODEL_REGISTRY

    print("\n" + "="*60)
    print("CONFIGURATION VALIDATION")
    print("="*60)

    config = get_config()

    # Narrative model, only needed for --narrative
    print(f"\nActive Model: {config.active_model}")
    try:
        model_config = config.model_config
        print(f"   Provider: {model_config.provider.value}")
        print(f"   Model: {model_config.model_name}")

        api_key_var = model_config.api_key_env
        has_key = bool(os.getenv(api_key_var))
        print(f"   API Key ({api_key_var}): {'Set' if has_key else 'MISSING'}")
    except ValueError as e:
        print(f"   Error: {e}")

    analysis = config.analysis
    print("\nAnalysis Defaults:")
    print(f"   Forecast horizon: {analysis.forecast_horizon}")
    print(f"   Confidence level: {analysis.confidence_level}")
    print(f"   Correlation threshold: {analysis.correlation_threshold}")
    print(f"   Max cells per request: {analysis.max_cells}")
    print(f"   Report directory: {analysis.report_output_dir}")
    print(f"   Trace export: {analysis.trace_export_dir or 'disabled'}")

    print("\nAvailable Models:")
    for name in MODEL_REGISTRY:
        marker = "→" if name == config.active_model else " "
        print(f"   {marker} {name}")

    print("\n" + "="*60)
    print("To switch models, set: ACTIVE_MODEL=<model-name>")
    print("="*60)


def main():
    setup_environment()
    configure_logging()

    parser = argparse.ArgumentParser(
        description="Sheet Analyst",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py analyze range.json --type trends --horizon 6
  python main.py analyze range.json --export
  python main.py scenarios range.json
  python main.py setup

Environment Variables:
  ACTIVE_MODEL          LLM for narratives (default: gpt-4o)
  OPENAI_API_KEY        OpenAI API key
  ANTHROPIC_API_KEY     Anthropic API key
  MAX_CELLS             Largest selection accepted (default: 200000)
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    analyze_parser = subparsers.add_parser('analyze', help='Analyze a selected range')
    analyze_parser.add_argument('payload', help='JSON request body')
    analyze_parser.add_argument(
        '--type', default='comprehensive',
        choices=['basic', 'statistical', 'quality', 'correlations', 'outliers', 'trends', 'comprehensive'],
        help='Analysis type',
    )
    analyze_parser.add_argument('--horizon', type=int, help='Forecast periods')
    analyze_parser.add_argument('--export', action='store_true', help='Write an Excel report')
    analyze_parser.add_argument('--narrative', action='store_true', help='Add an LLM narrative')
    analyze_parser.set_defaults(func=cmd_analyze)

    scenarios_parser = subparsers.add_parser('scenarios', help='What-if scenarios')
    scenarios_parser.add_argument('payload', help='JSON request body')
    scenarios_parser.add_argument(
        '--type', choices=['all', 'optimistic', 'realistic', 'pessimistic', 'custom'],
        help='Scenario type',
    )
    scenarios_parser.set_defaults(func=cmd_scenarios)

    formula_parser = subparsers.add_parser('formula', help='Generate or validate a formula')
    formula_parser.add_argument('intent', nargs='?', default='sum', help='Formula intent (sum, average, forecast, ...)')
    formula_parser.add_argument('--address', help='Range the formula applies to')
    formula_parser.add_argument('--payload', help='JSON request body with selectedData')
    formula_parser.add_argument('--validate', metavar='FORMULA', help='Screen a formula instead')
    formula_parser.set_defaults(func=cmd_formula)

    setup_parser = subparsers.add_parser('setup', help='Validate setup')
    setup_parser.set_defaults(func=cmd_setup)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)

if __name__ == "__main__":
    main()
