"""Upstream side of the proxy: header policy, HEAD probe, bounded fetch,
the guard pipeline that orders them, and the catch-all route."""
