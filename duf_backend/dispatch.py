# duf-serve/duf_backend/dispatch.py

from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qsl

from duf_backend.paths import PathState


class QueryKind(Enum):
    NONE = "none"
    ZIP = "zip"
    SEARCH = "search"


@dataclass(frozen=True)
class Query:
    kind: QueryKind
    term: str = ""
    # Only consulted by PUT, independent of `kind`
    unzip: bool = False


def parse_query(query_string: str) -> Query:
    """Classify a raw query string. `zip` wins over `q`; `unzip` is a separate flag."""
    params = {}
    for key, value in parse_qsl(query_string, keep_blank_values=True):
        params.setdefault(key, value)
    unzip = "unzip" in params
    if "zip" in params:
        return Query(QueryKind.ZIP, unzip=unzip)
    if "q" in params:
        return Query(QueryKind.SEARCH, params["q"], unzip=unzip)
    return Query(QueryKind.NONE, unzip=unzip)


class Action(Enum):
    ZIP_DIR = "zip_dir"
    SEARCH_DIR = "search_dir"
    SEND_FILE = "send_file"
    LIST_EMPTY = "list_empty"
    LIST_DIR = "list_dir"
    NO_CONTENT = "no_content"
    UPLOAD = "upload"
    DELETE = "delete"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


def select_action(method: str, state: PathState, query: Query, trailing_slash: bool, readonly: bool) -> Action:
    """
    The whole request routing table. Pure: no I/O, first matching row wins.

    GET    dir  + zip      -> ZIP_DIR
    GET    dir  + q=term   -> SEARCH_DIR
    GET    file            -> SEND_FILE
    GET    missing + "/"   -> LIST_EMPTY
    GET    anything else   -> LIST_DIR (empty when missing)
    OPTIONS                -> NO_CONTENT
    PUT                    -> FORBIDDEN if readonly else UPLOAD
    DELETE existing        -> FORBIDDEN if readonly else DELETE
    otherwise              -> NOT_FOUND
    """
    if method == "GET":
        if state.is_dir and query.kind is QueryKind.ZIP:
            return Action.ZIP_DIR
        if state.is_dir and query.kind is QueryKind.SEARCH:
            return Action.SEARCH_DIR
        if state.exists and not state.is_dir:
            return Action.SEND_FILE
        if not state.exists and trailing_slash:
            return Action.LIST_EMPTY
        return Action.LIST_DIR
    if method == "OPTIONS":
        return Action.NO_CONTENT
    if method == "PUT":
        return Action.FORBIDDEN if readonly else Action.UPLOAD
    if method == "DELETE" and state.exists:
        return Action.FORBIDDEN if readonly else Action.DELETE
    return Action.NOT_FOUND
