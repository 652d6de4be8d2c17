import logging as log
import re
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

_INT_MIN = int(np.iinfo(np.intp).min)
_INT_MAX = int(np.iinfo(np.intp).max)
_INT_LITERAL = re.compile(r"([+-]?)(0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+|0[0-7]+|[1-9][0-9]*|0)")
_TRUE_LITERALS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_LITERALS = {"0", "f", "F", "FALSE", "false", "False"}


class OptionException(Exception):
    def __init__(self, message: str):
        self.message = message

    def __str__(self):
        return self.message


class OptionSpecException(OptionException):
    pass


class OptionParseException(OptionException):
    pass


class InvalidOptionFormatError(OptionSpecException):
    def __init__(self, format: str):
        super().__init__(f"tried to create flag with no name: ‘{format}’")


class MalformedOptionException(OptionParseException):
    def __init__(self, option: str):
        super().__init__(f"bad flag: {option}")


class OptionNotExistsException(OptionParseException):
    def __init__(self, option: str):
        super().__init__(f"bad flag: {option}")


class MissingArgumentException(OptionParseException):
    def __init__(self, option: str):
        if option.startswith("--"):
            super().__init__(f"bad flag: needs value: {option}")
        else:
            super().__init__(f"bad flag: {option} needs value")


class ArgumentIncorrectType(OptionParseException):
    def __init__(self, arg: str, kind: str = "value"):
        super().__init__(f"error parsing {kind}: {arg}")


class HelpRequested(OptionException):
    def __init__(self):
        super().__init__("help requested")


class Value:
    """Converts command-line text into a typed value held in a storage cell."""

    def set(self, text: str) -> None:
        raise NotImplementedError

    def get(self) -> Any:
        raise NotImplementedError

    def __str__(self) -> str:
        raise NotImplementedError

    def is_bool_flag(self) -> bool:
        """Whether bare presence of the flag means true, with no value token."""
        return False

    def placeholder(self) -> str:
        """Name shown after the flag in usage text when none is quoted."""
        return "value"


class StandardValue(Value):
    """A value stored either on itself or on a caller-owned object.

    With no target the content lives in ``self.store``. Given a target, the
    content is read from and written to ``getattr(target, attr)``; a missing
    attribute is initialised to the zero value of the concrete type.
    """

    zero: Any = None

    def __init__(self, target: Optional[Any] = None, attr: str = "store"):
        self.target = self if target is None else target
        self.attr = attr
        if getattr(self.target, self.attr, None) is None:
            self._store(self._zero())

    def _zero(self) -> Any:
        return self.zero

    def _store(self, value: Any) -> None:
        setattr(self.target, self.attr, value)

    def get(self) -> Any:
        return getattr(self.target, self.attr)

    def __str__(self) -> str:
        return str(self.get())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get()!r})"


class BoolValue(StandardValue):
    zero = False

    def set(self, text: str) -> None:
        if text in _TRUE_LITERALS:
            self._store(True)
        elif text in _FALSE_LITERALS:
            self._store(False)
        else:
            raise ArgumentIncorrectType(text, "bool")

    def __str__(self) -> str:
        return "true" if self.get() else "false"

    def is_bool_flag(self) -> bool:
        return True

    def placeholder(self) -> str:
        return ""


class StringValue(StandardValue):
    zero = ""

    def set(self, text: str) -> None:
        self._store(text)

    def placeholder(self) -> str:
        return "string"


class StringsValue(StandardValue):
    def _zero(self) -> List[str]:
        return []

    def set(self, text: str) -> None:
        self.get().append(text)

    def __str__(self) -> str:
        return "[" + ", ".join(self.get()) + "]"

    def placeholder(self) -> str:
        return "string[,string...]"


class IntValue(StandardValue):
    zero = 0

    def set(self, text: str) -> None:
        self._store(parse_int(text))

    def placeholder(self) -> str:
        return "num"


def parse_int(text: str) -> int:
    """Parses a signed integer literal whose base is implied by its prefix.

    ``0x`` is hex, ``0o`` or a bare leading zero is octal, ``0b`` is binary,
    anything else decimal. The result must fit the platform integer.
    """
    match = _INT_LITERAL.fullmatch(text)
    if not match:
        raise ArgumentIncorrectType(text, "int")

    sign, digits = match.groups()
    prefix = digits[:2].lower()
    if prefix == "0x":
        number = int(digits[2:], 16)
    elif prefix == "0o":
        number = int(digits[2:], 8)
    elif prefix == "0b":
        number = int(digits[2:], 2)
    elif len(digits) > 1 and digits[0] == "0":
        number = int(digits[1:], 8)
    else:
        number = int(digits, 10)
    if sign == "-":
        number = -number

    if not _INT_MIN <= number <= _INT_MAX:
        raise ArgumentIncorrectType(text, "int")
    return number


class Flag:
    def __init__(self, names: List[str], usage: str, value: Value):
        self.names = names
        self.usage = usage
        self.value = value
        self.count = 0

    def set(self, text: str) -> None:
        try:
            self.value.set(text)
        except ValueError as e:
            raise ArgumentIncorrectType(text) from e
        self.count += 1

    @property
    def is_set(self) -> bool:
        return self.count > 0

    def is_bool_flag(self) -> bool:
        return self.value.is_bool_flag()

    def __repr__(self) -> str:
        return f"Flag({','.join(self.names)!r}, {self.value!r})"


class FlagSet:
    """A flat namespace of flags and the positional arguments left over after
    parsing.

    Flags must all be registered before ``parse`` is called. Parsing the same
    set more than once accumulates: positionals and list values keep growing
    and flags stay marked as set.
    """

    def __init__(self, output: Any, usage: str):
        self.output = output
        self.usage_header = usage
        self.flags: Dict[str, Flag] = {}
        self.args: List[str] = []

    def var(self, value: Value, name: str, usage: str) -> Flag:
        names = [n for n in name.split(",") if n]
        if not names:
            raise InvalidOptionFormatError(name)

        flag = Flag(names, usage, value)
        for n in names:
            if n in self.flags:
                log.debug(f"flag alias '{n}' redefined, replacing {self.flags[n]!r}")
            self.flags[n] = flag
        return flag

    def boolean(self, name: str, usage: str) -> BoolValue:
        value = BoolValue()
        self.var(value, name, usage)
        return value

    def boolean_var(self, target: Any, attr: str, name: str, usage: str) -> None:
        self.var(BoolValue(target, attr), name, usage)

    def string(self, name: str, usage: str) -> StringValue:
        value = StringValue()
        self.var(value, name, usage)
        return value

    def string_var(self, target: Any, attr: str, name: str, usage: str) -> None:
        self.var(StringValue(target, attr), name, usage)

    def strings(self, name: str, usage: str) -> StringsValue:
        value = StringsValue()
        self.var(value, name, usage)
        return value

    def strings_var(self, target: Any, attr: str, name: str, usage: str) -> None:
        self.var(StringsValue(target, attr), name, usage)

    def integer(self, name: str, usage: str) -> IntValue:
        value = IntValue()
        self.var(value, name, usage)
        return value

    def integer_var(self, target: Any, attr: str, name: str, usage: str) -> None:
        self.var(IntValue(target, attr), name, usage)

    def parse(self, args: List[str]) -> None:
        if isinstance(args, str):
            raise TypeError(f"parse expects a list of arguments, got the string {args!r}")
        try:
            self._parse(list(args))
        except HelpRequested:
            self.print_usage()
            raise
        except OptionParseException as e:
            log.debug(f"parse aborted: {e}")
            self.print_error(str(e))
            raise

    def _parse(self, args: List[str]) -> None:
        current = 0
        while current < len(args):
            arg = args[current]
            current += 1
            if arg == "--":
                self.args.extend(args[current:])
                return
            elif arg == "-":
                self.args.append(arg)
            elif arg.startswith("-"):
                if len(arg) > 2 and arg.startswith("--"):
                    current = self._parse_long_option(arg[2:], args, current)
                else:
                    current = self._parse_short_option(arg[1:], args, current)
            else:
                self.args.append(arg)

    def _parse_long_option(self, arg: str, args: List[str], current: int) -> int:
        name, eq, value = arg.partition("=")
        if len(name) == 1:
            raise MalformedOptionException(f"--{name}")
        if name == "help":
            raise HelpRequested()

        flag = self.flags.get(name)
        if flag is None:
            raise OptionNotExistsException(f"--{name}")

        if not eq:
            if flag.is_bool_flag():
                value = "true"
            elif current < len(args):
                value = args[current]
                current += 1
            else:
                raise MissingArgumentException(f"--{name}")
        flag.set(value)
        return current

    def _parse_short_option(self, cluster: str, args: List[str], current: int) -> int:
        for i, opt in enumerate(cluster):
            flag = self.flags.get(opt)
            if flag is None:
                raise OptionNotExistsException(f"'{opt}'")

            if flag.is_bool_flag():
                flag.set("true")
                continue

            rest = cluster[i + 1:]
            if rest:
                flag.set(rest)
            elif current < len(args):
                flag.set(args[current])
                current += 1
            else:
                raise MissingArgumentException(f"'{opt}'")
            break
        return current

    def is_set(self, name: str) -> bool:
        flag = self.flags.get(name)
        return flag is not None and flag.is_set

    def count(self, name: str) -> int:
        flag = self.flags.get(name)
        return flag.count if flag is not None else 0

    def lookup(self, name: str) -> Optional[Flag]:
        return self.flags.get(name)

    def arg(self, i: int) -> str:
        if i < 0 or i >= len(self.args):
            return ""
        return self.args[i]

    def narg(self) -> int:
        return len(self.args)

    def visit(self, fn: Callable[[Flag], None]) -> None:
        """Calls fn once per distinct flag, ordered by each flag's first name."""
        seen = set()
        flags = []
        for flag in self.flags.values():
            if id(flag) not in seen:
                seen.add(id(flag))
                flags.append(flag)
        for flag in sorted(flags, key=lambda f: f.names[0]):
            fn(flag)

    def defaults(self) -> str:
        lines: List[str] = []

        def render(flag: Flag) -> None:
            prefix = ""
            for i, name in enumerate(flag.names):
                dash = "--" if len(name) > 1 else "-"
                prefix += ("  " if i == 0 else ",") + dash + name
            placeholder, usage = unquote_usage(flag)
            if placeholder:
                prefix += " " + placeholder
            sep = "\t" if len(prefix) <= 4 else "\n    \t"
            lines.append(prefix + sep + usage.replace("\n", "\n    \t"))

        self.visit(render)
        return "\n".join(lines)

    def usage(self) -> str:
        result = f"Usage: {self.usage_header}\n"
        defaults = self.defaults()
        if defaults:
            result += "\n" + defaults + "\n"
        return result

    def print_usage(self) -> None:
        self.output.write(self.usage())

    def print_error(self, message: str) -> None:
        self.output.write(message + "\n")
        self.print_usage()


def unquote_usage(flag: Flag) -> Tuple[str, str]:
    """Returns the placeholder name for a flag and its usage with the
    backticks removed.

    The first `quoted` word of the usage names the placeholder; otherwise
    the value supplies a default for its type.
    """
    match = re.search(r"`([^`]*)`", flag.usage)
    if match:
        name = match.group(1)
        return name, flag.usage[:match.start()] + name + flag.usage[match.end():]
    return flag.value.placeholder(), flag.usage


# Example usage
if __name__ == "__main__":
    flags = FlagSet(sys.stderr, "posixflag [-v] [-o file] [-n num] [-I dir]... args...")
    verbose = flags.boolean("v,verbose", "print progress")
    output = flags.string("o,output", "write results to `file`")
    count = flags.integer("n", "repeat count")
    include = flags.strings("I,include", "add `dir` to the search path")

    try:
        flags.parse(sys.argv[1:])
    except HelpRequested:
        sys.exit(0)
    except OptionParseException:
        sys.exit(2)

    print(f"verbose={verbose} output={output} n={count} include={include} args={flags.args}")
