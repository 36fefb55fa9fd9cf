# tsparquet

Search and materialization of time series laid out as columnar tables: a
labels table with one column per label, and a chunks table holding encoded
sample chunks in three eight-hour columns per day. Tables are held in memory,
split into row groups, column chunks and dictionary-encoded pages with
per-page statistics, so that searches can skip pages and work on ranges of
rows.

## Install

    pip install tsparquet

The `test` extra pulls in pytest for running the test suite.

## Modules

- `tsparquet.schema.block` – day-based block naming (`block_name_for_day`,
  `day_from_block_name`, `split_block_path`), the file names inside a block
  (`labels_pfile_name_for_shard`, `chunks_pfile_name_for_shard`,
  `meta_file_name_for_block`) and the `Meta` record of a block (version,
  name, time span, shard count, and the columns of each metric name).
- `tsparquet.schema.columns` – mapping between label names and column names
  (`label_name_to_column`, `column_to_label_name`), the layout versions
  `V0`, `V1`, `V2`, and picking the chunk column for a timestamp
  (`chunk_column_name`, `chunk_column_index`).
- `tsparquet.search.rowrange` – half-open `RowRange(start, count)` values
  and set algebra over sorted lists of them: `intersect`, `intersection`,
  `intersect_row_ranges`, `complement_row_ranges`, `limit_row_ranges`,
  `simplify`.
- `tsparquet.search.partitioner` – `GapBasedPartitioner`, which coalesces
  nearby byte ranges into larger reads, bounded by a maximum range size and
  a maximum gap; it returns `Part` records.
- `tsparquet.search.table` – the in-memory table: `Table`, `RowGroup`,
  `ColumnChunk` and `Page`, built with `Table.from_rows`,
  `RowGroup.from_rows` and `ColumnChunk.from_values`.
- `tsparquet.search.metrics` – labelled counters (`CounterVec`) for pages
  scanned and read, bytes read and rows materialized, a `Registry` to
  register them into with `register_metrics`, and `method_context` /
  `current_method` to tag work with the search method in progress.
- `tsparquet.search.matchers` – label `Matcher`s of type `MatchType.EQUAL`,
  `NOT_EQUAL`, `REGEXP` and `NOT_REGEXP`; regexes are fully anchored, and
  `set_matches` lists the literals of regexes that accept only a small set.
- `tsparquet.search.constraint` – `equal`, `regex` and `not_` constraints,
  `matchers_to_constraints`, `initialize` to check them against a table's
  schema, and `filter_row_group` to narrow a row group to matching rows.
- `tsparquet.search.pages` – planning page reads for row ranges
  (`pages_to_rows`, `partition_page_ranges`, `PageEntryRead`) and reading
  the values at those rows (`read_column_values`, `total_rows`).
- `tsparquet.search.materialize` – label sets, chunks, label names and label
  values of matching rows (`materialize_labels`, `materialize_chunks`,
  `materialize_label_names`, `materialize_label_values`), `decode_chunks`
  for the binary chunk cell format, and the `ChunkMeta` / `SeriesChunks`
  records.
- `tsparquet.search.search` – the entry points `select`, `label_names` and
  `label_values`, taking `SelectReadMeta`, `LabelNamesReadMeta` or
  `LabelValuesReadMeta` and returning the results together with a set of
  warnings. External labels are matched and merged in, replica labels are
  dropped.

## Example

    from datetime import datetime, timezone

    from tsparquet.schema.block import Meta, block_name_for_day
    from tsparquet.schema.columns import label_name_to_column
    from tsparquet.search.matchers import Matcher, MatchType
    from tsparquet.search.rowrange import RowRange, intersect_row_ranges
    from tsparquet.search.search import LabelValuesReadMeta, label_values
    from tsparquet.search.table import Table

    print(block_name_for_day(datetime(2024, 11, 23, tzinfo=timezone.utc)))
    # 2024/11/23

    print(intersect_row_ranges([RowRange(0, 4), RowRange(8, 2)], [RowRange(2, 9)]))
    # [RowRange(start=2, count=2), RowRange(start=8, count=2)]

    name, job = label_name_to_column("__name__"), label_name_to_column("job")
    table = Table.from_rows(
        [{name: "up", job: "api"}, {name: "up", job: "db"}],
        [name, job],
    )
    meta = LabelValuesReadMeta(meta=Meta(version=1), label_table=table)
    print(label_values(meta, "job", 0, Matcher(MatchType.EQUAL, "__name__", "up")))
    # (['api', 'db'], set())

## What it does not do

- It does not read or write parquet files or talk to object storage; tables
  are built in memory from rows.
- Chunks are returned as their encoding, time span and raw bytes; samples
  inside a chunk are not decoded.
- There is no query engine, server or command-line program; the package is
  a library to be called from Python.