"""
Survey export to Darwin Core Archive - Complete Pipeline
Extracts the export → Flattens → Resolves taxonomy → Writes one DwC-A per dataset
→ Builds the publication index → Optionally syncs to S3
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from survey_dwca.archive import ArchiveAssembler
from survey_dwca.config import Settings, get_settings
from survey_dwca.exceptions import PipelineError
from survey_dwca.extract import ExportExtractor
from survey_dwca.identifiers import group_datasets
from survey_dwca.logging import setup_logging
from survey_dwca.mapping import MappingEngine
from survey_dwca.publication import PublicationIndexBuilder
from survey_dwca.publish import S3Publisher
from survey_dwca.schema_docs import SchemaDocGenerator
from survey_dwca.taxonomy import GNParserClient, NameParser, TaxonAuthority, TaxonomicResolver, WoRMSClient
from survey_dwca.terms import TermRegistry

logger = logging.getLogger(__name__)


class SurveyPipeline:
    """
    One run over the full export. Collaborators default to the real services
    and can be replaced with fakes.
    """

    def __init__(self,
                 settings: Settings,
                 parser: Optional[NameParser] = None,
                 authority: Optional[TaxonAuthority] = None,
                 registry: Optional[TermRegistry] = None):
        self.settings = settings
        self.parser = parser or GNParserClient(settings.name_parser_url, settings.request_timeout)
        self.authority = authority or WoRMSClient(settings.authority_url, settings.request_timeout)
        self.registry = registry
        self.mapping_engine = MappingEngine(settings.mapping_schema)

    def load_registry(self) -> TermRegistry:
        if self.registry is None:
            self.registry = TermRegistry.load(
                self.settings.occurrence_vocabulary_url,
                self.settings.measurement_vocabulary_url,
                self.settings.request_timeout,
            )
        return self.registry

    def run(self, dataset_id: Optional[str] = None) -> List[Path]:
        """
        Execute the pipeline.

        Args:
            dataset_id: Only regenerate this dataset's archive

        Returns:
            Paths of the written archives
        """
        # Step 1: Extract
        records = ExportExtractor(self.settings.request_timeout).fetch(self.settings.export_source)

        # Step 2: Flatten
        datasets = group_datasets(records)
        if dataset_id is not None and dataset_id not in {d.dataset_id for d in datasets}:
            raise PipelineError("Unknown dataset", context={"dataset_id": dataset_id})

        dataset_ids = {dataset.title: dataset.dataset_id for dataset in datasets}
        occurrence_df, measurement_df = self.mapping_engine.transform_records(records, dataset_ids)

        selected = [d for d in datasets if dataset_id is None or d.dataset_id == dataset_id]
        if dataset_id is not None:
            occurrence_df = occurrence_df[occurrence_df['datasetID'] == dataset_id].copy()

        # Step 3: Resolve taxonomy
        resolver = TaxonomicResolver(self.parser, self.authority)
        resolver.resolve(occurrence_df)

        # Step 4: Write archives
        assembler = ArchiveAssembler(self.load_registry(), self.settings.output_dir, self.settings.base_url)
        archives = [
            assembler.assemble(dataset, occurrence_df, measurement_df)
            for dataset in selected
        ]
        if dataset_id is None:
            assembler.remove_stale(d.dataset_id for d in datasets)

        # Step 5: Publication index
        PublicationIndexBuilder(self.settings.output_dir, self.settings.base_url).build(datasets)

        return archives

    def publish(self) -> int:
        """Replace the remote copy with the local output."""
        if not self.settings.publish_bucket:
            logger.warning("No publish bucket configured; skipping upload")
            return 0
        publisher = S3Publisher(self.settings.publish_bucket, self.settings.publish_prefix)
        return publisher.sync(self.settings.output_dir)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="survey-dwca",
        description="Convert the survey export into Darwin Core Archives",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Build the archives")
    run.add_argument("--input", dest="export_source", help="Export path or URL")
    run.add_argument("--output-dir", type=Path, help="Local output directory")
    run.add_argument("--dataset", dest="dataset_id", help="Only regenerate this dataset")
    run.add_argument("--publish", action="store_true", help="Sync the output to S3 afterwards")

    docs = subparsers.add_parser("docs", help="Document the column mappings")
    docs.add_argument("--output", type=Path, help="Markdown file to write (default: stdout)")
    docs.add_argument("--with-terms", action="store_true", help="Fetch vocabularies to include term URIs")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    args = build_parser().parse_args(argv)

    overrides = {}
    if getattr(args, 'export_source', None):
        overrides['export_source'] = args.export_source
    if getattr(args, 'output_dir', None):
        overrides['output_dir'] = args.output_dir
    settings = get_settings(**overrides)
    setup_logging(settings.log_level)

    try:
        if args.command == "docs":
            registry = None
            if args.with_terms:
                registry = TermRegistry.load(
                    settings.occurrence_vocabulary_url,
                    settings.measurement_vocabulary_url,
                    settings.request_timeout,
                )
            content = SchemaDocGenerator(settings.mapping_schema, registry).generate_mappings_doc()
            if args.output:
                args.output.write_text(content, encoding='utf-8')
            else:
                sys.stdout.write(content)
            return 0

        logger.info("=" * 60)
        logger.info("SURVEY EXPORT TO DARWIN CORE ARCHIVE PIPELINE")
        logger.info("=" * 60)

        pipeline = SurveyPipeline(settings)
        archives = pipeline.run(dataset_id=args.dataset_id)
        if args.publish:
            pipeline.publish()

        logger.info("PIPELINE COMPLETE: %d archives in %s", len(archives), settings.output_dir)
        return 0
    except PipelineError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
