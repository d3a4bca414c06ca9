"""
ATS Command Line Interface

Usage:
    python -m src.cli generate --tenant 1 --period 01/2024 --user 7
    python -m src.cli preview --tenant 1 --period 01/2024
    python -m src.cli history --tenant 1 [--period 01/2024]

File: src/cli.py
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config.ats_config import SystemConfig, configure_logging
from src.exceptions import AtsError
from src.services.ats_generator import create_ats_generator
from src.services.history import SQLAlchemyHistoryRecorder

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ats", description="Anexo Transaccional Simplificado (ATS)")
    parser.add_argument("--database-url", default=SystemConfig.DATABASE_URL, help="SQLAlchemy database URL")
    parser.add_argument("--storage-dir", default=SystemConfig.STORAGE_DIR, help="Output folder for ATS files")

    commands = parser.add_subparsers(dest="command", required=True)

    generate = commands.add_parser("generate", help="Generate the ATS XML and ZIP of a period")
    generate.add_argument("--tenant", type=int, required=True, help="Company id")
    generate.add_argument("--period", required=True, help="Fiscal period MM/YYYY")
    generate.add_argument("--user", type=int, required=True, help="Id of the requesting user")

    preview = commands.add_parser("preview", help="Summarize a period without generating files")
    preview.add_argument("--tenant", type=int, required=True)
    preview.add_argument("--period", required=True)

    history = commands.add_parser("history", help="List previous generations of a company")
    history.add_argument("--tenant", type=int, required=True)
    history.add_argument("--period")
    history.add_argument("--limit", type=int, default=20)
    history.add_argument("--offset", type=int, default=0)

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        if args.command == "history":
            session_factory = sessionmaker(bind=create_engine(args.database_url))
            entries = SQLAlchemyHistoryRecorder(session_factory).list_history(
                args.tenant, period=args.period, limit=args.limit, offset=args.offset
            )
            _print_json([entry.to_dict() for entry in entries])
            return 0

        generator = create_ats_generator(args.database_url, storage_dir=args.storage_dir)

        if args.command == "generate":
            result = generator.generate(args.tenant, args.period, args.user)
            _print_json({
                'mensaje': result.message,
                'id': result.history_id,
                'archivo_xml': result.xml_file_name,
                'archivo_zip': result.archive_file_name,
                'ruta_xml': result.xml_path,
                'ruta_zip': result.archive_path,
                'estadisticas': result.statistics.to_dict(),
                'validacion': result.validation.to_dict(),
            })
        else:
            _print_json(generator.preview(args.tenant, args.period).to_dict())

    except AtsError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(json.dumps(e.to_dict(), ensure_ascii=False), file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
