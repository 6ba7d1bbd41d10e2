"""
Confidence recalculation pipeline for ProviderConfidence.

Re-scores stored provider/plan acceptance records so that time-based decay
shows up in search results without waiting for a record to be viewed.
Coordinates ingestion, validation, batched recalculation, staleness
flagging, provider aggregation and reporting.
"""

import argparse
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import pandas as pd

from ..audit.score_log import ScoreChangeLogger
from ..config import DEFAULT_CONFIG_PATH, load_confidence_config
from ..ingestion.evidence_loader import load_acceptance_records, validate_acceptance_records
from ..policy.aggregate import AggregateConfidenceEvaluator
from ..policy.reverification import ReverificationPolicy
from ..scoring.calculator import ConfidenceCalculator
from ..scoring.evidence import evidence_from_record

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class ConfidenceRecalculationPipeline:
    """
    Batch recalculation of stored confidence scores.

    The clock is read at most once per run; every record in the run is
    scored against the same instant.
    """

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH,
                 score_logger: Optional[ScoreChangeLogger] = None):
        """
        Initialize pipeline with configuration.

        Args:
            config_path: Path to configuration file
            score_logger: Score change logger (created from configuration if omitted)
        """
        self.config_path = config_path
        self.config = load_confidence_config(config_path)

        self.calculator = ConfidenceCalculator(self.config.get("scoring", {}))
        self.policy = ReverificationPolicy(self.config["reverification"]["baseline_days"])
        self.aggregate_evaluator = AggregateConfidenceEvaluator(
            min_score_threshold=self.config["aggregate"]["min_score_threshold"],
            average_score_threshold=self.config["aggregate"]["average_score_threshold"]
        )
        self.score_logger = score_logger or ScoreChangeLogger(self.config["audit"]["db_path"])

        self.pipeline_start_time = None
        self.stage_times = {}

        logger.info("Initialized ConfidenceRecalculation pipeline")

    def _start_stage_timer(self, stage_name: str):
        """Start timing for a pipeline stage."""
        self.stage_times[stage_name] = time.time()
        logger.info(f"Starting stage: {stage_name}")

    def _end_stage_timer(self, stage_name: str):
        """End timing for a pipeline stage."""
        if stage_name in self.stage_times:
            duration = time.time() - self.stage_times[stage_name]
            self.stage_times[stage_name] = duration
            logger.info(f"Completed stage: {stage_name} in {duration:.2f} seconds")

    def ingest_data(self, input_path: str) -> pd.DataFrame:
        """
        Load acceptance records.

        Args:
            input_path: Path to a CSV, Parquet or JSON-lines file

        Returns:
            DataFrame with acceptance records
        """
        self._start_stage_timer("data_ingestion")

        try:
            df = load_acceptance_records(input_path)
            self._end_stage_timer("data_ingestion")
            return df

        except Exception as e:
            logger.error(f"Data ingestion failed: {e}")
            raise

    def validate_data(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Validate acceptance records and drop rows that cannot be scored.

        Args:
            df: Input DataFrame

        Returns:
            Validated and cleaned DataFrame
        """
        self._start_stage_timer("data_validation")

        try:
            validated_df, validation_summary = validate_acceptance_records(df, self.config.get("schema", {}))

            logger.info(f"Data validation completed: {validation_summary.get('success_rate', 0):.2%} success rate")

            self._end_stage_timer("data_validation")
            return validated_df

        except Exception as e:
            logger.error(f"Data validation failed: {e}")
            raise

    def recalculate(self, records_df: pd.DataFrame, now: datetime,
                    dry_run: bool = False,
                    limit: Optional[int] = None,
                    batch_size: Optional[int] = None,
                    on_progress: Optional[ProgressCallback] = None) -> Tuple[pd.DataFrame, Dict[str, Any]]:
        """
        Recalculate confidence scores for records with verifications.

        A record counts as updated when its new score differs from the
        stored ``confidence_score`` (or none was stored). Unless ``dry_run``
        is set, updated scores are written back and logged.

        Args:
            records_df: Acceptance records
            now: Evaluation instant for the whole run
            dry_run: Count changes without applying them
            limit: Maximum number of records to process
            batch_size: Records per batch (defaults to configuration)
            on_progress: Called with (processed, updated) after each batch

        Returns:
            Tuple of (records_df with updated scores, run statistics)
        """
        self._start_stage_timer("recalculation")
        started = time.time()

        recalc_config = self.config.get("recalculation", {})
        batch_size = batch_size or recalc_config.get("batch_size", 100)
        min_verifications = recalc_config.get("min_verifications", 1)

        stats = {"processed": 0, "updated": 0, "unchanged": 0, "errors": 0, "duration_ms": 0.0}

        updated_df = records_df.copy()
        if "confidence_score" not in updated_df.columns:
            updated_df["confidence_score"] = pd.NA

        verification_counts = updated_df.get("verification_count", pd.Series(0, index=updated_df.index))
        eligible_index = updated_df.index[verification_counts.fillna(0) >= min_verifications]

        total_count = len(eligible_index)
        effective_limit = min(limit, total_count) if limit else total_count
        eligible_index = eligible_index[:effective_limit]

        logger.info(f"Starting confidence score recalculation: total={total_count}, "
                    f"limit={effective_limit}, dry_run={dry_run}, batch_size={batch_size}")

        run_id = self.score_logger.new_run_id()

        for batch_start in range(0, effective_limit, batch_size):
            batch_index = eligible_index[batch_start:batch_start + batch_size]
            changes = []

            for index in batch_index:
                record = updated_df.loc[index].to_dict()
                try:
                    result = self.calculator.evaluate(evidence_from_record(record), now)
                    old_score = record.get("confidence_score")
                    old_score = None if pd.isna(old_score) else int(old_score)

                    if result.score != old_score:
                        changes.append({
                            "index": index,
                            "record_id": record.get("id", index),
                            "provider_npi": record.get("provider_npi"),
                            "plan_id": record.get("plan_id"),
                            "old_score": old_score,
                            "new_score": result.score,
                        })
                        stats["updated"] += 1
                    else:
                        stats["unchanged"] += 1

                except Exception as e:
                    stats["errors"] += 1
                    logger.error(f"Error recalculating confidence for record {record.get('id', index)}: {e}")

                stats["processed"] += 1

            if changes and not dry_run:
                for change in changes:
                    updated_df.at[change.pop("index"), "confidence_score"] = change["new_score"]
                self.score_logger.record_score_changes(changes, run_id, now)

            logger.info(f"Progress: {stats['processed']}/{effective_limit} processed, "
                        f"{stats['updated']} updated")
            if on_progress:
                on_progress(stats["processed"], stats["updated"])

        stats["duration_ms"] = (time.time() - started) * 1000
        self.score_logger.record_run(run_id, now, stats, dry_run=dry_run)

        logger.info(f"Confidence score recalculation complete: processed={stats['processed']}, "
                    f"updated={stats['updated']}, unchanged={stats['unchanged']}, errors={stats['errors']}, "
                    f"dry_run={dry_run}, duration={stats['duration_ms'] / 1000:.1f}s")

        self._end_stage_timer("recalculation")
        return updated_df, stats

    def flag_stale_records(self, records_df: pd.DataFrame, now: datetime) -> pd.DataFrame:
        """
        Flag scored records that are due for re-verification.

        Args:
            records_df: Records with ``confidence_score`` set
            now: Evaluation instant

        Returns:
            DataFrame with staleness columns appended
        """
        self._start_stage_timer("staleness_flagging")

        try:
            scored_df = records_df[records_df["confidence_score"].notna()]
            flagged_df = self.policy.flag_stale_records(scored_df, now)

            self._end_stage_timer("staleness_flagging")
            return flagged_df

        except Exception as e:
            logger.error(f"Staleness flagging failed: {e}")
            raise

    def aggregate_providers(self, flagged_df: pd.DataFrame) -> pd.DataFrame:
        """
        Summarize confidence per provider.

        Args:
            flagged_df: Scored records

        Returns:
            DataFrame with one aggregate row per provider
        """
        self._start_stage_timer("provider_aggregation")

        try:
            provider_df = self.aggregate_evaluator.aggregate_by_provider(flagged_df)

            self._end_stage_timer("provider_aggregation")
            return provider_df

        except Exception as e:
            logger.error(f"Provider aggregation failed: {e}")
            raise

    def generate_report(self, stats: Dict[str, Any], flagged_df: pd.DataFrame,
                        provider_df: pd.DataFrame, original_count: int) -> Dict[str, Any]:
        """
        Generate pipeline report.

        Args:
            stats: Recalculation statistics
            flagged_df: Scored and flagged records
            provider_df: Provider aggregates
            original_count: Number of records ingested

        Returns:
            Report dictionary
        """
        scoring_stats = {}
        if not flagged_df.empty:
            scores = flagged_df["confidence_score"].astype(int)
            needs_verification = scores < self.calculator.thresholds["needs_verification"]
            scoring_stats = {
                "mean_score": float(scores.mean()),
                "min_score": int(scores.min()),
                "max_score": int(scores.max()),
                "needs_verification_count": int(needs_verification.sum()),
            }

        report = {
            "pipeline_execution": {
                "start_time": self.pipeline_start_time,
                "end_time": time.time(),
                "stage_times": self.stage_times,
                "total_duration": time.time() - self.pipeline_start_time if self.pipeline_start_time else 0
            },
            "data_processing": {
                "original_records": original_count,
                "scored_records": len(flagged_df),
                "stale_records": int(flagged_df["is_stale"].sum()) if "is_stale" in flagged_df else 0,
                "providers": len(provider_df),
                "providers_needing_attention": (int(provider_df["needs_attention"].sum())
                                                if not provider_df.empty else 0),
            },
            "recalculation": stats,
            "scoring_statistics": scoring_stats,
            "change_metrics": self.score_logger.calculate_change_metrics(),
        }

        logger.info("Pipeline report generated")
        return report

    def run_pipeline(self, input_path: str,
                     output_path: Optional[str] = None,
                     now: Optional[datetime] = None,
                     dry_run: bool = False,
                     limit: Optional[int] = None,
                     batch_size: Optional[int] = None) -> Dict[str, Any]:
        """
        Run the complete recalculation pipeline.

        Args:
            input_path: Path to acceptance records
            output_path: Directory for output files (optional)
            now: Evaluation instant (defaults to the current UTC time)
            dry_run: Count changes without applying them
            limit: Maximum number of records to recalculate
            batch_size: Records per batch

        Returns:
            Pipeline execution report
        """
        self.pipeline_start_time = time.time()
        now = now or datetime.now(timezone.utc)
        logger.info(f"Starting confidence recalculation pipeline for {input_path} at {now.isoformat()}")

        try:
            raw_df = self.ingest_data(input_path)
            original_count = len(raw_df)

            validated_df = self.validate_data(raw_df)

            updated_df, stats = self.recalculate(validated_df, now, dry_run=dry_run,
                                                 limit=limit, batch_size=batch_size)

            flagged_df = self.flag_stale_records(updated_df, now)

            provider_df = self.aggregate_providers(flagged_df)

            report = self.generate_report(stats, flagged_df, provider_df, original_count)

            if output_path:
                self._save_results(flagged_df, provider_df, output_path)

            logger.info(f"Pipeline completed successfully in "
                        f"{time.time() - self.pipeline_start_time:.2f} seconds")
            return report

        except Exception as e:
            logger.error(f"Pipeline failed: {e}")
            raise

    def _save_results(self, flagged_df: pd.DataFrame, provider_df: pd.DataFrame, output_path: str):
        """Save pipeline results to specified path."""
        output_dir = Path(output_path)
        output_dir.mkdir(parents=True, exist_ok=True)

        flagged_df.to_csv(output_dir / "confidence_scores.csv", index=False)
        provider_df.to_csv(output_dir / "provider_confidence.csv", index=False)

        logger.info(f"Results saved to {output_path}")


def main():
    """Main entry point for the confidence recalculation pipeline."""
    parser = argparse.ArgumentParser(description="ProviderConfidence score recalculation")
    parser.add_argument("--input", required=True, help="Acceptance records file (csv, parquet or jsonl)")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Configuration file path")
    parser.add_argument("--output", help="Output directory path")
    parser.add_argument("--now", type=datetime.fromisoformat, help="Evaluation time override (ISO 8601)")
    parser.add_argument("--dry-run", action="store_true", help="Count changes without applying them")
    parser.add_argument("--limit", type=int, help="Maximum number of records to recalculate")
    parser.add_argument("--batch-size", type=int, help="Records per batch")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args()

    Path("logs").mkdir(exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("logs/provider_confidence.log")
        ]
    )

    try:
        pipeline = ConfidenceRecalculationPipeline(args.config)
        report = pipeline.run_pipeline(
            input_path=args.input,
            output_path=args.output,
            now=args.now,
            dry_run=args.dry_run,
            limit=args.limit,
            batch_size=args.batch_size
        )

        recalculation = report["recalculation"]
        processing = report["data_processing"]
        print("\n" + "=" * 50)
        print("CONFIDENCE RECALCULATION SUMMARY" + (" (DRY RUN)" if args.dry_run else ""))
        print("=" * 50)
        print(f"Records Ingested: {processing['original_records']:,}")
        print(f"Processed: {recalculation['processed']:,}")
        print(f"Updated: {recalculation['updated']:,}")
        print(f"Unchanged: {recalculation['unchanged']:,}")
        print(f"Errors: {recalculation['errors']:,}")
        print(f"Stale Records: {processing['stale_records']:,}")
        print(f"Providers Needing Attention: {processing['providers_needing_attention']:,} "
              f"of {processing['providers']:,}")
        print(f"Total Duration: {report['pipeline_execution']['total_duration']:.2f} seconds")
        print("=" * 50)

    except Exception as e:
        logger.error(f"Pipeline execution failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
