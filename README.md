# webhook-tester

`webhook-tester` records the HTTP requests a webhook sender makes. You create a
session and point the sender at the session URL. Each request it makes is kept
with its method, URI, headers, body and client address, and you read them back
through a JSON API. The session decides how those requests are answered: the
status code, the content type, the body and an optional delay.

The package contains:

* a WSGI application (`webhook_tester.server.Server`) that holds the routes,
  middlewares and handlers;
* the `webhook-tester` command line, with the `version`, `healthcheck` and
  `serve` commands.

## Installation

```sh
pip install .
```

To run the tests:

```sh
pip install ".[test]"
pytest
```

## Command line

```sh
webhook-tester version        # print the application and Python versions
webhook-tester healthcheck    # GET http://127.0.0.1:<port>/live; exit code 1 unless it answers 200
```

The global options `-v/--verbose`, `--debug` and `--log-json` set how the logs
on stderr look. Run without a command, the program prints its help.

`healthcheck` (aliases `chk`, `health` and `check`) takes `-p/--port`, which
defaults to `8080`. A non-empty `LISTEN_PORT` environment variable overrides the
flag. A malformed value in that variable is an error. The probe sends the
`User-Agent` value `HealthChecker/internal`. The request logger does not log
requests whose user agent contains "healthcheck".

`version` has the aliases `v` and `ver`.

### `serve` options

`serve` (aliases `s` and `server`) reads its options, applies environment
overrides and validates the result (see `webhook_tester.serve_flags.ServeFlags`).
Environment variables take priority over flags:

| Option                    | Default                       | Environment variable |
|---------------------------|-------------------------------|----------------------|
| `-l`, `--listen`          | `0.0.0.0`                     | `LISTEN_ADDR`        |
| `-p`, `--port`            | `8080`                        | `LISTEN_PORT`        |
| `--public`                | `web` next to the program     | `PUBLIC_DIR`         |
| `--max-requests`          | `128`                         | `MAX_REQUESTS`       |
| `--session-ttl`           | `168h0m0s`                    | `SESSION_TTL`        |
| `--ignore-header-prefix`  | none (repeatable, comma list) |                      |
| `--max-request-body-size` | `65536` (0 = unlimited)       |                      |
| `--redis-dsn`             | `redis://127.0.0.1:6379/0`    | `REDIS_DSN`          |
| `--storage-driver`        | `memory` (`memory`/`redis`)   | `STORAGE_DRIVER`     |
| `--pubsub-driver`         | `memory` (`memory`/`redis`)   | `PUBSUB_DRIVER`      |
| `--ws-max-clients`        | `0` (unlimited)               | `WS_MAX_CLIENTS`     |
| `--ws-max-lifetime`       | `0s` (unlimited)              | `WS_MAX_LIFETIME`    |

Durations use forms such as `48h`, `1h30m` or `1.5s`. They are parsed by
`webhook_tester.config.parse_duration`. An empty `--public` turns off static
file serving.

## What the package does not do

The package ships no storage backend and no publish/subscribe backend, neither
in memory nor on redis. On its own, `webhook-tester serve` therefore stops with
"no storage and pub/sub backends are available to serve with" once its options
have been checked. It can only start a server when the program that embeds it
puts a callable under the `"serve"` key of the click context object. That
callable receives the `ServeFlags` and the logger. There is also no `/metrics`
endpoint and no websocket endpoint for live session events.

## Using the WSGI application

The application needs a storage object and a publisher, which you supply.

The storage object must provide these methods, and raise an exception on failure:

* `create_session(content, code, content_type, delay)`, which returns the session UUID;
* `get_session(uuid)`, which returns `None` or an object with `content`,
  `content_type`, `code` and `delay` (a `timedelta`);
* `create_request(session_uuid, client_addr, method, uri, body, headers)`,
  which returns the request UUID;
* `get_all_requests(session_uuid)` and `get_request(session_uuid, request_uuid)`.
  The records they return have `uuid`, `client_addr`, `method`, `content`,
  `headers`, `uri` and `created_at`;
* `delete_session`, `delete_requests` and `delete_request`, each returning
  whether anything was deleted.

The publisher needs `publish(session_uuid, event)`, where the event is a
`webhook_tester.models.Event`.

```python
from webhook_tester.config import Config
from webhook_tester.logger import new_logger
from webhook_tester.server import Server

server = Server(new_logger(False, False, False), version="0.1.0")
server.register(Config(max_request_body_size=65536), "", None, storage, publisher, None)
server.start("127.0.0.1", 8080)   # blocks until server.stop() is called from another thread
```

The arguments of `Server.register(cfg, public_dir, rdb, storage, pub, webhook_metrics)` are:

* `rdb`: an optional redis client that `/ready` pings;
* `webhook_metrics`: an optional object with `increment_processed_webhooks()`;
* `public_dir`: when not empty, files are served from that directory, with
  `index.html` as the index and `__error__.html` as the error page template.

Use `Server.rule(name)` to look up a registered route. Because `Server` is a
WSGI callable, any WSGI server can host it.

### Routes

* `/{session}`, `/{session}/{status code}` and `/{session}/anything` accept
  GET, HEAD, POST, PUT, PATCH, DELETE, OPTIONS and TRACE. Each request is
  recorded and answered with the session's response. A status code in the path
  (100–599) overrides the session's code. Headers that start with one of the
  ignored prefixes are not recorded. A body larger than the configured limit
  gets a 500 answer.
* `POST /api/session` creates a session. The body must be JSON; every field is
  optional: `status_code` (100–530, default 200), `content_type` (at most 32
  characters, default `text/plain`), `response_delay` (seconds, at most 30) and
  `response_content_base64` (at most 10240 characters once decoded).
* `DELETE /api/session/{session}` deletes a session and its requests.
* `GET /api/session/{session}/requests` lists the recorded requests, newest first.
* `GET /api/session/{session}/requests/{request}` returns one recorded request.
* `DELETE /api/session/{session}/requests/{request}` deletes one request and
  publishes a `request-deleted` event.
* `DELETE /api/session/{session}/requests` deletes all requests of the session
  and publishes a `requests-deleted` event.
* `GET /api/settings` returns the limits and `GET /api/version` returns the version.
* `GET`/`HEAD` `/live` and `/ready` are the health probes.

Every recorded webhook publishes a `request-registered` event. API errors come
back as `{"success": false, "code": ..., "message": ...}`. Exceptions raised in
handlers are logged and answered with a JSON 500.