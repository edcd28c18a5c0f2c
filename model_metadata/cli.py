import argparse
import logging
import sys

from .config import CATALOG_OUTPUT_PATH, DATA_DIR, MAX_CONCURRENT, MODELS_INDEX_PATH, OUTPUT_DIR
from .controllers.cli_controller import CLIController
from .errors import ConfigurationError, SchemaNormalizationError


def main():
    parser = argparse.ArgumentParser(description="Collect and enrich metadata for ModelCar images")
    parser.add_argument("--input", "-i", default=MODELS_INDEX_PATH, help="Models index YAML (models: [{type, uri, labels}])")
    parser.add_argument("--output-dir", "-o", default=OUTPUT_DIR, help="Directory for per-model metadata")
    parser.add_argument("--catalog", "-c", default=CATALOG_OUTPUT_PATH, help="Path of the aggregated models catalog")
    parser.add_argument("--static-catalog", "-s", action="append", dest="static_catalogs",
                        help="Supplemental catalog to append (repeatable)")
    parser.add_argument("--data-dir", default=DATA_DIR, help="Directory holding Hugging Face version indexes")
    parser.add_argument("--max-concurrent", "-j", type=int, default=MAX_CONCURRENT, help="Models processed in parallel")
    parser.add_argument("--extraction-config", help="YAML file extending date formats and placeholder tokens")
    parser.add_argument("--update-collections", action="store_true", help="Refresh Hugging Face version indexes first")
    parser.add_argument("--skip-huggingface", action="store_true", help="Do not enrich from the Hugging Face Hub")
    parser.add_argument("--catalog-only", action="store_true", help="Only rebuild the catalog from existing metadata")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()
    if args.max_concurrent < 1:
        parser.error("--max-concurrent must be at least 1")

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        controller = CLIController(
            output_dir=args.output_dir,
            data_dir=args.data_dir,
            extraction_config=args.extraction_config,
        )
        exit_code = controller.run(
            index_path=args.input,
            catalog_path=args.catalog,
            static_catalogs=args.static_catalogs,
            max_concurrent=args.max_concurrent,
            update_collections=args.update_collections,
            skip_huggingface=args.skip_huggingface,
            catalog_only=args.catalog_only,
            verbose=args.verbose,
        )
    except (ConfigurationError, SchemaNormalizationError) as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(2)
    sys.exit(exit_code)

if __name__ == "__main__":
    main()
