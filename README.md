# lnms

A small network monitoring system made of two services that talk to each
other over ZeroMQ:

- **poller** (`lnms-poller`) receives lists of provisioned devices, logs in
  to each device over SSH on a schedule and reads counters from it. The
  values it reads are batched and pushed on as events.
- **reportdb** (`lnms-reportdb`) receives event batches, stores them in
  memory-mapped files per counter and day, and answers queries with gauge,
  grid and histogram aggregations (`AVG`, `MIN`, `MAX`, `SUM`).

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Running

Start the report database and the poller, each in its own terminal:

```
lnms-reportdb
lnms-poller
```

Both run until SIGINT (Ctrl+C) or SIGTERM. On shutdown they close their
sockets and stop their worker threads; the report database also saves the
indexes of every store it wrote to.

### Options

`lnms-reportdb`:

| Option               | Default                              |
|----------------------|--------------------------------------|
| `--working-dir`      | parent of the current directory      |
| `--log-dir`          | `logs`                               |
| `--polling-address`  | `tcp://*:6003`                       |
| `--query-address`    | `tcp://*:6004`                       |
| `--response-address` | `tcp://*:6005`                       |

The working directory holds `config/` and the `database/` tree.

`lnms-poller`:

| Option           | Default               |
|------------------|-----------------------|
| `--working-dir`  | the current directory |
| `--log-dir`      | `logs`                |
| `--pull-address` | `tcp://*:6002`        |
| `--push-address` | `tcp://*:6001`        |

The working directory holds `config/`.

### Logging

Each service logs to `<log-dir>/<service>_log_YYYY-MM-DD.log`, rotated at
1 MiB with 3 backups. INFO messages are printed to the console only; every
other level is written to the file only, one JSON object per line.

## Ports

| Port | Bound by | Socket | Carries                                     |
|------|----------|--------|---------------------------------------------|
| 6001 | poller   | PUSH   | batches of collected events (msgpack)       |
| 6002 | poller   | PULL   | lists of provisioned devices (msgpack)      |
| 6003 | reportdb | PULL   | batches of events to store (msgpack)        |
| 6004 | reportdb | PULL   | queries (msgpack)                           |
| 6005 | reportdb | PUSH   | query responses (JSON)                      |

A device is a map with `object_id`, `ip`, `IsProvisioned`, `username`,
`password` and `port`. A device with `IsProvisioned` true is added to every
configured counter; one with it false is removed. An event is a map with
`objectId`, `counterId`, `timestamp` (Unix seconds) and `value`.

## Configuration

Each service reads `config/config.json` and `config/counter.json` from its
working directory.

`counter.json` maps counter ids to a name and a value type (`uint64`,
`float64` or `string`); the poller also reads a `polling` interval in
seconds:

```json
{
  "1": {"name": "memory.used", "type": "uint64", "polling": 10},
  "2": {"name": "cpu.usage", "type": "float64", "polling": 10},
  "3": {"name": "system.hostname", "type": "string", "polling": 60}
}
```

The poller knows how to read three counters: `1` runs `free -b` for used
memory, `2` runs `top -bn1` for CPU usage and `3` runs `hostname`. Polling
any other counter id fails and is logged.

The reportdb `config.json` sets `writers`, `readers`, `partitions`,
`dataBuffer`, `responseBuffer`, `eventsBuffer`, `queryBuffer`,
`objectWorkers`, `fileGrowthSize` (bytes), `saveIndexInterval` (seconds) and
`queryTimeout` (seconds; 0 means no timeout).

The poller `config.json` sets `deviceBuffer`, `dataBuffer`, `workers`,
`eventBuffer`, `batchInterval` (milliseconds), `pollDeviceBuffer` (devices
polled at once per counter) and `workBuffer`.

## Storage

Events are stored under
`database/YYYY/MM/DD/counter_<id>/` in the working directory, one
`partition_<n>.bin` data file and one `index_<n>.msg` index file per
partition; an object's partition is its id modulo `partitions`. Data files
grow by `fileGrowthSize` bytes at a time. Indexes are saved every
`saveIndexInterval` seconds and on shutdown.

## Queries

A query names a counter, an optional list of object ids (all stored objects
when empty), a time range in Unix seconds, an aggregation, and optionally
`group_by_objects` and an `interval` in seconds:

```json
{
  "request_id": 42,
  "query_request": {
    "counter_id": 1,
    "object_ids": [1, 2],
    "from": 1700000000,
    "to": 1700086400,
    "aggregation": "AVG",
    "group_by_objects": false,
    "interval": 300
  }
}
```

- Without an interval the answer is a single value (gauge), or one value per
  object with `group_by_objects` (grid).
- With an interval the range is cut into buckets of that width, returned
  per object with `group_by_objects` or merged across objects otherwise.
  Buckets without samples hold `0`.
- String counters are returned as the raw data points of each object.
- With an aggregation other than `AVG`, `MIN`, `MAX` or `SUM`, the values
  themselves are returned (a single value, or the list of them).

The response is `{"request_id": ..., "data": ...}`, with an `error` member
instead of data when the query fails, for example when no data is found in
the range or the query times out.

## What this package does not do

There is no HTTP API, no database of credentials, discovery profiles or
provisioned devices, and no network discovery. Device lists must be pushed
to the poller's port 6002 by another program, the poller's events must be
forwarded to the report database's port 6003 by another program, and queries
must be sent to port 6004 by a client that reads answers from port 6005.