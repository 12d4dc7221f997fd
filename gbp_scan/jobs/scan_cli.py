"""CLI job to scan a single business and persist the result."""

import argparse
import json
import logging
from typing import Optional

from gbp_scan.core.config import get_settings
from gbp_scan.core.errors import ScanError, UpstreamConfigurationError, user_message_for
from gbp_scan.scan.orchestrator import start_scan
from gbp_scan.scan.recommendations import generate_recommendations

logger = logging.getLogger(__name__)


def run_scan_job(*, business_name: str, business_location: str, recommend: bool = True) -> dict:
    """Scan synchronously and, when ``recommend`` is set, generate recommendations inline."""
    settings = get_settings()
    if not settings.google_api_key:
        raise UpstreamConfigurationError("GOOGLE_PLACES_API_KEY is required")

    result = start_scan(business_name, business_location, settings=settings)
    output = result.to_dict()

    if recommend:
        payload = generate_recommendations(
            result.scan_id,
            business_name,
            business_location,
            result.scores,
            result.place_summary,
            settings=settings,
        )
        output["recommendations"] = payload.to_dict() if payload else None

    return output


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a Google Business Profile health scan")
    parser.add_argument("--name", dest="business_name", required=True, help="Business name as shown on Google")
    parser.add_argument("--location", dest="business_location", required=True, help="Town, city or postcode")
    parser.add_argument(
        "--no-recommendations",
        dest="recommend",
        action="store_false",
        help="Skip recommendation generation",
    )
    return parser


def main(argv: Optional[list] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        output = run_scan_job(
            business_name=args.business_name,
            business_location=args.business_location,
            recommend=args.recommend,
        )
    except ScanError as exc:
        logger.error("Scan failed: %s", exc)
        print(user_message_for(exc))
        return 2 if isinstance(exc, UpstreamConfigurationError) else 1

    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
