# netroute

Building blocks for HTTP clients and small HTTP servers.

## Modules

- **`netroute.progress`**: `Progress` tracks a transfer.
  - `progress()` gives the fraction done. It returns 1.0 for an empty transfer and -1.0 when the size is unknown.
  - `bytes_per_second()` gives the average rate.
- **`netroute.credentials`**:
  - `OAuth10Credentials` can be read from JSON and written back with `from_json`, `to_json`, `from_file` and `to_file`.
  - `OAuth20Credentials` holds a bearer token and an authorization scheme. The default scheme is `Bearer`.
  - `ProxySettings` holds a proxy host, port, username and password. `clear()` resets all four.
- **`netroute.jwt`**:
  - `JSONWebSignatureHeader` and `JSONWebTokenPayload` build the two halves of a JSON Web Token.
  - `generate_token` signs them with an RSA private key using RS256.
- **`netroute.request`**:
  - `Request` writes a request line and headers with `write`. It estimates its body length with `estimated_content_length`.
  - `JSONRequest` posts a JSON document.
  - `PostRequest` posts URL-encoded or multipart forms built from `FormPart` values.
  - `Form` encodes the fields and parts.
- **`netroute.response`**: `Response` classifies status codes with `is_success`, `is_client_error` and the like.
  - It estimates the content length from `Content-Length`, or from a `Content-Range: bytes a-b/n` header.
  - It returns the body as bytes (`buffer`), as a stream, as JSON, as XML, or as a Pillow image (`pixels`). `to_file` saves it to a file.
- **`netroute.filters`**: `OAuth10RequestFilter` and `OAuth20RequestFilter` each add an `Authorization` header to a `Request`.
  - The OAuth 1.0 filter signs with HMAC-SHA1.
  - The OAuth 2.0 filter adds the bearer token.
- **`netroute.post_events`**: the event records for a raw POST body, a parsed form and each stage of a file upload. The records are `PostEventArgs`, `PostFormEventArgs` and `PostUploadEventArgs`, with the stage given as an `UploadState`.
- **`netroute.ipvideo`**: `IPVideoRoute` streams JPEG frames to every connected `IPVideoConnection` as `multipart/x-mixed-replace` (MJPEG).
  - Each client may choose flipping, size and quality through the query string, for example `?size=320x240&vflip=yes&quality=high`.
- **`netroute.post`**: `PostRoute` and `PostRouteHandler` accept URL-encoded forms, multipart forms and other bodies.
  - `PostRouteFileHandler` writes uploaded files into the upload folder.
  - It enforces the size limit and the allowed content types.

## Installing

```
pip install netroute
```

To run the test suite:

```
pip install "netroute[test]"
pytest
```

## Credentials files

`OAuth10Credentials.from_file` reads a JSON object. Keys may be snake_case or camelCase:

```json
{
    "consumerKey": "placeholder",
    "consumer_secret": "secret",
    "access_token": "token",
    "access_token_secret": "secret",
    "owner": "someone",
    "owner_id": "12"
}
```

- Any other key is logged as a warning and ignored.
- If the file cannot be read or parsed, `from_file` logs the error and returns empty credentials.
- `to_file` always writes snake_case keys.

## Signing a token

```python
from netroute.jwt import (
    Algorithm,
    JSONWebSignatureHeader,
    JSONWebTokenPayload,
    generate_token,
)

header = JSONWebSignatureHeader()
header.set_algorithm(Algorithm.RS256)

payload = JSONWebTokenPayload()
payload.set_issuer("service@example.com")
payload.set_audience(["https://api.example.com/"])
payload.set_issued_at_time(1_700_000_000)
payload.set_expiration_time(1_700_003_600)

with open("private-key.pem") as key_file:
    pem = key_file.read()

no_passphrase = ""
signed_jwt = generate_token(pem, no_passphrase, header, payload)
```

The result is three base64url parts joined by dots: the header, the payload and the RS256 signature. `generate_token` raises `ValueError` in three cases:

- the key is empty;
- no algorithm is set;
- an algorithm other than RS256 is set.

## Streaming video

An `IPVideoRoute` keeps one `IPVideoConnection` per client.

`send` takes a Pillow image and prepares it with the route's frame settings. It resizes and flips the image, then encodes it as JPEG and queues it on every connection. A connection's queue drops its oldest frames once it grows past `max_client_queue_size`.

`IPVideoConnection.handle_request` sets the response headers and writes queued frames to the response stream until `stop` is called. It takes a URI and any object with `status`, `reason`, `headers` and a `send()` method that returns a writable binary stream. It refuses the client with status 503 when `max_client_connections` is already reached. A limit of 0 means no limit.

## What this package does not do

This package does not open network connections or run a server. Requests know how to write themselves, and responses are built from status, headers and a body that you supply. Routes and handlers work with the request and response objects you pass in. Sending requests, accepting connections and dispatching them to routes is left to whatever HTTP client or server you pair it with.