from .parse_logs import decode_log_item, parse_structured, parse_trace, parse_trivial

__all__ = ["decode_log_item", "parse_structured", "parse_trace", "parse_trivial"]
