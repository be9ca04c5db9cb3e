# pgproto

Building blocks for talking to a PostgreSQL server at the wire level. The
package produces the bytes a client sends and decodes value payloads it
receives. It uses only the standard library and assumes `client_encoding`
is `UTF8`.

## Modules

- `pgproto.frontend` builds client messages, each returned as `bytes`:
  `startup_message`, `query`, `parse`, `bind`, `describe`, `execute`,
  `sync`, `flush`, `close`, `terminate`, `password_message`,
  `sasl_initial_response`, `sasl_response`, `ssl_request`,
  `cancel_request`, `copy_done`, `copy_fail`, and the `CopyData` class
  whose `encode()` gives the message bytes. Strings containing a NUL byte
  raise `ValueError`; `bind` wraps failures in `BindError`, whose
  `conversion` attribute tells a failed parameter conversion apart from an
  encoding failure.
- `pgproto.sasl` handles authentication: `md5_hash` answers the MD5
  challenge, and `ScramSha256` runs the client side of a SCRAM-SHA-256
  exchange, with channel binding chosen through `ChannelBinding`
  (`unrequested()`, `unsupported()`, `tls_server_end_point(signature)`).
  It also exposes `saslprep`, the SCRAM `hi` function and
  `parse_server_first_message`. Failures raise `ScramError`.
- `pgproto.password` hashes a password on the client for an
  `ALTER USER ... PASSWORD` statement: `scram_sha_256` (random 16-byte salt
  unless one is given, 4096 iterations) and `md5`.
- `pgproto.escape` quotes text for SQL: `escape_literal` and
  `escape_identifier`.
- `pgproto.scalar` encodes and decodes scalar values in the binary format:
  bool, bytea, text, `"char"`, int2/int4/int8, oid, pg_lsn, float4/float8,
  hstore, varbit (`Varbit`), timestamp, date, time, macaddr, uuid, ltree,
  lquery and ltxtquery. Timestamps and times are microsecond counts and
  dates are day counts, as integers.
- `pgproto.structured` does the same for arrays (`array_to_sql`,
  `array_from_sql` returning an `Array` with `dimensions()` and `values()`
  iterators), ranges (`RangeBound`, `BoundKind`, `Range`), points, boxes,
  paths (`Path.points()`) and inet addresses (`Inet`).
- `pgproto.wire` holds shared pieces: `IsNull`, `DecodeError`,
  `write_nullable`, `i16_from_size` and `i32_from_size`.
- `pgproto.catalog` reads PostgreSQL catalog sources: `parse_errcodes` for
  `errcodes.txt`, `DatParser` for `.dat` files, and `parse_types`, which
  turns `pg_type.dat` and `pg_range.dat` into a dict of `PgType` keyed by
  OID. Malformed input raises `DatParseError`.

Malformed value payloads raise `pgproto.wire.DecodeError`, a subclass of
`ValueError`.

## Examples

Build a simple query message:

```python
from pgproto import frontend

frontend.query("SELECT 1")
# b'Q\x00\x00\x00\rSELECT 1\x00'
```

Run a SCRAM-SHA-256 exchange:

```python
from pgproto.sasl import ChannelBinding, ScramSha256

password = b"password"
scram = ScramSha256(password, ChannelBinding.unsupported())
first = scram.message()            # send in SASLInitialResponse
scram.update(server_first_bytes)   # payload of AuthenticationSASLContinue
final = scram.message()            # send in SASLResponse
scram.finish(server_final_bytes)   # payload of AuthenticationSASLFinal; raises on failure
```

Encode and decode values:

```python
from pgproto import scalar

buf = scalar.int4_to_sql(0x01020304)
assert scalar.int4_from_sql(buf) == 0x01020304
```

Quote an identifier:

```python
from pgproto.escape import escape_identifier

escape_identifier('f"oo')   # '"f""oo"'
```

## What it does not do

- It opens no sockets and has no client or connection object; sending and
  receiving bytes is left to the caller.
- It builds client messages only. It does not parse messages sent by the
  server (row descriptions, data rows, errors, notices); only the value
  payloads inside them are decoded.
- It has no TLS support; for channel binding the caller supplies the
  certificate signature to `ChannelBinding.tls_server_end_point`.
- It does not map Python types to PostgreSQL types automatically; each
  encoder and decoder is called explicitly.

## Running the tests

```
pip install -e .[test]
pytest
```