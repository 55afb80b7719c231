from .snapshot import check_snapshot_page, parse_snapshot


PARSERS = {
    "safer": parse_snapshot,
}


def get_parser(registry="safer"):
    parser = PARSERS.get(registry)
    if parser is None:
        raise KeyError(f"No native parser for {registry}")
    return parser


__all__ = ["PARSERS", "check_snapshot_page", "get_parser", "parse_snapshot"]
