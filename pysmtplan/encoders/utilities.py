import re

_UNSAFE = re.compile(r"[\s(),]+")


def str_repr(name, t=None, prefix=None):
    """!
    Builds the name of a z3 variable.

    @param name: name of the ground entity, e.g. "(at truck1 depot)"
    @param t: the layer, if the variable is layer-addressed
    @param prefix: role of the variable, e.g. "pre" or "sta"
    @returns: a name without whitespace or parentheses
    """
    key = _UNSAFE.sub("_", str(name)).strip("_") or "_"
    if prefix is not None:
        key = f"{prefix}_{key}"
    if t is not None:
        key = f"{key}_{t}"
    return key


def flatten_list(nested):
    return [item for sublist in nested for item in sublist]
