"""Front end error hierarchy."""


class FrontEndError(Exception):
    """Fatal front end failure; no indexer runs on the tree."""

    pass


class InputError(FrontEndError):
    """The crate root could not be read."""

    pass


class ParseError(FrontEndError):
    """A loaded source file is not valid Rust."""

    pass


class ModuleLoadError(FrontEndError):
    """An out-of-line module file is missing, ambiguous, unreadable or circular."""

    pass


class ExpansionError(FrontEndError):
    """Expansion failed, e.g. on a malformed `cfg` predicate."""

    pass
