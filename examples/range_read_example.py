"""
Token-Range Read Example

This example demonstrates how to read a Cassandra column family split by split,
either directly with RangeRecordReader or through the Spark Data Source.

Prerequisites:
    1. A module exposing a Thrift connection provider, e.g. my_thrift.connect:

       def connect(host, port, keyspace, credentials):
           client = ...  # open a framed Thrift Cassandra.Client to host:port
           if credentials:
               client.login(AuthenticationRequest(credentials))
           client.set_keyspace(keyspace)
           return client

    2. A JSON configuration file (see README.md), e.g. reader_config.json

    3. For the Spark examples: Databricks workspace or Spark 4 with spark
"""

import json

from cassandra_to_dbx import (
    CassandraRangeDataSource,
    InputSplit,
    RangeRecordReader,
    load_and_process_config,
)


def example_read_one_split(connection_provider):
    """
    Example: Read one split on this machine and count rows per column.
    """
    print("=" * 80)
    print("Example 1: Read one split with RangeRecordReader")
    print("=" * 80)

    config = load_and_process_config("reader_config.json")
    split = InputSplit(
        start_token="0",
        end_token="85070591730234615865843651857942052864",
        locations=["cass-1.internal", "cass-2.internal"],
    )

    reader = RangeRecordReader()
    reader.initialize(split, config, connection_provider)
    try:
        rows = 0
        columns = 0
        for key, row_columns in reader.records():
            rows += 1
            columns += len(row_columns)
            if rows <= 3:
                print(f"  {key!r}: {len(row_columns)} columns")
        print(f"\n✅ Read {rows} rows, {columns} columns")
        print(f"  Progress estimate: {reader.get_progress():.2f}")
    finally:
        reader.close()


def example_spark_data_source(spark):
    """
    Example: Read several splits in parallel through the Spark Data Source.

    Each split becomes one Spark partition, read by the executor closest to a replica.
    """
    print("\n" + "=" * 80)
    print("Example 2: Spark Data Source")
    print("=" * 80)

    splits = [
        {"start_token": "0", "end_token": "56713727820156410577229101238628035242",
         "locations": ["cass-1.internal", "cass-2.internal"]},
        {"start_token": "56713727820156410577229101238628035242",
         "end_token": "113427455640312821154458202477256070484",
         "locations": ["cass-2.internal", "cass-3.internal"]},
    ]

    spark.dataSource.register(CassandraRangeDataSource)
    df = (spark.read.format("cassandra_range")
          .option("keyspace", "titan")
          .option("column_family", "edgestore")
          .option("connection_provider", "my_thrift:connect")
          .option("batch_size", "1024")
          .option("splits", json.dumps(splits))
          .load())

    print(f"\n✅ Rows: {df.count()}")
    df.selectExpr("hex(key) AS key", "size(columns) AS column_count").show(5)


def example_wide_rows(spark):
    """
    Example: Wide rows, one record per column.

    Use for rows with too many columns to fetch whole; progress can exceed 1.0.
    """
    print("\n" + "=" * 80)
    print("Example 3: Wide rows")
    print("=" * 80)

    df = (spark.read.format("cassandra_range")
          .option("keyspace", "titan")
          .option("column_family", "edgestore")
          .option("connection_provider", "my_thrift:connect")
          .option("wide_rows", "true")
          .option("splits", json.dumps([
              {"start_token": "0", "end_token": "1000", "locations": ["cass-1.internal"]}]))
          .load())

    df.groupBy("key").count().orderBy("count", ascending=False).show(5)


# ============================================================================
# Main execution (for notebook or script)
# ============================================================================

if __name__ == "__main__":
    print("Token-Range Read Examples")
    print("=" * 80)
    print()
    print("Note: the Spark examples require spark to be available.")
    print("Run in Databricks workspace notebook or with Databricks Connect.")
    print()

    try:
        spark  # noqa: F821

        example_spark_data_source(spark)  # noqa: F821
        # example_wide_rows(spark)  # Optional

    except NameError:
        print("❌ Error: spark not available")
        print()
        print("To read a single split without Spark:")
        print()
        print("     from my_thrift import connect")
        print("     example_read_one_split(connect)")
