"""KochoCORS proxy pipeline.

  - target.py    — target URL validation
  - cors.py      — CORS origin resolution and preflight response
  - headers.py   — outbound header sanitizer and relay header builder
  - streaming.py — request/response body streaming
  - engine.py    — /proxy route, shared httpx client, forwarding and relay
"""
