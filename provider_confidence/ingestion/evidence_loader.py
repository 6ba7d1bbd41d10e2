"""
Acceptance record loading and validation using Great Expectations.

Reads provider/plan acceptance records from local files and validates them
against the evidence schema the scoring engine expects. Rows the engine
cannot score (negative counts, unknown enum values, missing identifiers)
are dropped before scoring.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import great_expectations as gx
import pandas as pd

from ..scoring.evidence import AcceptanceStatus, ProviderStatus
from ..scoring.sources import VerificationSource

logger = logging.getLogger(__name__)

TIMESTAMP_COLUMNS = [
    "data_source_date",
    "last_verified_at",
    "plan_effective_date",
    "plan_termination_date",
    "provider_last_update_date",
]
COUNT_COLUMNS = ["verification_count", "upvotes", "downvotes", "user_submissions"]
ENUM_COLUMNS = {
    "data_source": [s.value for s in VerificationSource],
    "verification_source": [s.value for s in VerificationSource],
    "provider_status": [s.value for s in ProviderStatus],
    "acceptance_status": [s.value for s in AcceptanceStatus],
}


def _parse_timestamp(value):
    if pd.isna(value):
        return pd.NaT
    try:
        return pd.Timestamp(value)
    except (TypeError, ValueError):
        return pd.NaT


def parse_timestamp_column(values: pd.Series) -> pd.Series:
    """
    Parse a timestamp column value by value.

    Offset-bearing values keep their offset and naive values stay naive, so
    a column mixing both keeps every timestamp (as an object column) instead
    of losing one kind to NaT. Unparseable values become NaT.

    Args:
        values: Raw column values

    Returns:
        datetime64 Series when the parsed values share one timezone, else an
        object Series of Timestamps
    """
    if pd.api.types.is_datetime64_any_dtype(values):
        return values

    parsed = values.map(_parse_timestamp)

    unparseable = int((parsed.isna() & values.notna()).sum())
    if unparseable:
        logger.warning(f"Column '{values.name}': {unparseable} unparseable timestamps treated as missing")

    try:
        return pd.to_datetime(parsed)
    except (TypeError, ValueError):
        logger.info(f"Column '{values.name}' mixes naive and offset-bearing timestamps, keeping them per value")
        return parsed


def load_acceptance_records(input_path: str) -> pd.DataFrame:
    """
    Load acceptance records from a local CSV, Parquet or JSON-lines file.

    Args:
        input_path: Path to input file

    Returns:
        DataFrame with timestamp columns parsed and enum columns upper-cased
    """
    path = Path(input_path)

    if path.suffix == ".csv":
        df = pd.read_csv(path)
    elif path.suffix == ".parquet":
        df = pd.read_parquet(path)
    elif path.suffix in (".json", ".jsonl"):
        df = pd.read_json(path, lines=True)
    else:
        raise ValueError(f"Unsupported file format: {input_path}")

    for column in TIMESTAMP_COLUMNS:
        if column in df.columns:
            df[column] = parse_timestamp_column(df[column])

    for column in ENUM_COLUMNS:
        if column in df.columns:
            df[column] = df[column].where(df[column].isna(), df[column].astype(str).str.strip().str.upper())

    for column in COUNT_COLUMNS:
        if column in df.columns:
            df[column] = df[column].fillna(0).astype(int)

    logger.info(f"Loaded {len(df)} acceptance records from {input_path}")
    return df


class AcceptanceRecordValidator:
    """
    Validates acceptance record schema and quality using Great Expectations.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize validator with configuration.

        Args:
            config: Schema configuration dictionary
        """
        self.config = config
        self.required_columns = config.get("required_columns", ["provider_npi", "plan_id"])

        self.context = gx.get_context(mode="ephemeral")
        self.data_source_name = "acceptance_records"

        logger.info("Initialized AcceptanceRecordValidator")

    def create_expectations(self, df: pd.DataFrame) -> gx.ExpectationSuite:
        """
        Create the expectation suite for the columns present in a DataFrame.

        Args:
            df: DataFrame the suite will be run against

        Returns:
            ExpectationSuite with validation rules
        """
        suite = self.context.suites.add(gx.ExpectationSuite(name="acceptance_record_validation"))

        for column in self.required_columns:
            suite.add_expectation(gx.expectations.ExpectColumnToExist(column=column))
            suite.add_expectation(gx.expectations.ExpectColumnValuesToNotBeNull(column=column))

        # One acceptance record per provider/plan pair
        if len(self.required_columns) > 1:
            suite.add_expectation(
                gx.expectations.ExpectCompoundColumnsToBeUnique(column_list=list(self.required_columns))
            )
        elif self.required_columns:
            suite.add_expectation(gx.expectations.ExpectColumnValuesToBeUnique(column=self.required_columns[0]))

        for column in COUNT_COLUMNS:
            if column in df.columns:
                suite.add_expectation(
                    gx.expectations.ExpectColumnValuesToBeBetween(column=column, min_value=0)
                )

        for column, value_set in ENUM_COLUMNS.items():
            if column in df.columns:
                suite.add_expectation(
                    gx.expectations.ExpectColumnValuesToBeInSet(column=column, value_set=value_set)
                )

        logger.info(f"Created expectation suite '{suite.name}' with {len(suite.expectations)} expectations")
        return suite

    def validate_data(self, df: pd.DataFrame):
        """
        Validate DataFrame against the acceptance record expectation suite.

        Args:
            df: DataFrame to validate

        Returns:
            Great Expectations suite validation result
        """
        missing = [column for column in self.required_columns if column not in df.columns]
        if missing:
            raise ValueError(f"Missing required columns: {missing}")

        data_source = self.context.data_sources.add_pandas(name=self.data_source_name)
        data_asset = data_source.add_dataframe_asset(name="acceptance_record_frame")
        batch_definition = data_asset.add_batch_definition_whole_dataframe("acceptance_record_batch")
        batch = batch_definition.get_batch(batch_parameters={"dataframe": df})

        validation_result = batch.validate(self.create_expectations(df))

        for expectation_result in validation_result.results:
            if not expectation_result.success:
                logger.warning(
                    f"Failed expectation: {expectation_result.expectation_config.type} "
                    f"for column: {expectation_result.expectation_config.kwargs.get('column', 'N/A')}"
                )

        return validation_result

    def get_validation_summary(self, validation_result) -> Dict[str, Any]:
        """
        Extract validation summary from a validation result.

        Args:
            validation_result: Result from validate_data

        Returns:
            Dictionary with validation summary
        """
        results = list(validation_result.results)
        failed = [r for r in results if not r.success]

        summary = {
            "success": len(failed) == 0,
            "total_expectations": len(results),
            "successful_expectations": len(results) - len(failed),
            "failed_expectations": len(failed),
            "failed_expectations_details": [
                {
                    "expectation_type": r.expectation_config.type,
                    "column": r.expectation_config.kwargs.get("column", "N/A"),
                }
                for r in failed
            ],
        }
        summary["success_rate"] = (summary["successful_expectations"] / len(results)) if results else 0.0

        logger.info(f"Validation summary: {summary['successful_expectations']}/{summary['total_expectations']} passed "
                    f"({summary['success_rate']:.2%} success rate)")
        return summary

    def clean_invalid_data(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Drop rows the scoring engine cannot score.

        Args:
            df: Original DataFrame

        Returns:
            Cleaned DataFrame
        """
        original_rows = len(df)
        cleaned_df = df.copy()

        for column in self.required_columns:
            null_mask = cleaned_df[column].isnull()
            if null_mask.any():
                cleaned_df = cleaned_df[~null_mask]
                logger.info(f"Removed {int(null_mask.sum())} rows with null values in column '{column}'")

        for column in COUNT_COLUMNS:
            if column in cleaned_df.columns:
                negative_mask = cleaned_df[column] < 0
                if negative_mask.any():
                    cleaned_df = cleaned_df[~negative_mask]
                    logger.info(f"Removed {int(negative_mask.sum())} rows with negative '{column}'")

        for column, value_set in ENUM_COLUMNS.items():
            if column in cleaned_df.columns:
                invalid_mask = cleaned_df[column].notna() & ~cleaned_df[column].isin(value_set)
                if invalid_mask.any():
                    cleaned_df = cleaned_df[~invalid_mask]
                    logger.info(f"Removed {int(invalid_mask.sum())} rows with unknown '{column}' values")

        duplicate_mask = cleaned_df.duplicated(subset=self.required_columns, keep="first")
        if duplicate_mask.any():
            cleaned_df = cleaned_df[~duplicate_mask]
            logger.info(f"Removed {int(duplicate_mask.sum())} duplicate provider/plan records")

        removed_rows = original_rows - len(cleaned_df)
        if original_rows:
            logger.info(f"Data cleaning completed: removed {removed_rows} invalid rows "
                        f"({removed_rows / original_rows:.2%} of data)")

        return cleaned_df


def validate_acceptance_records(df: pd.DataFrame,
                                config: Optional[Dict[str, Any]] = None) -> Tuple[pd.DataFrame, Dict[str, Any]]:
    """
    Convenience function to validate and clean acceptance records.

    Args:
        df: Acceptance record DataFrame
        config: Schema configuration

    Returns:
        Tuple of (cleaned_df, validation_summary)
    """
    validator = AcceptanceRecordValidator(config or {})
    validation_result = validator.validate_data(df)
    summary = validator.get_validation_summary(validation_result)

    if summary["success"]:
        logger.info("All validation expectations passed")
        return df, summary

    logger.warning("Validation failed, cleaning invalid data")
    cleaned_df = validator.clean_invalid_data(df)
    summary["removed_rows"] = len(df) - len(cleaned_df)
    return cleaned_df, summary
