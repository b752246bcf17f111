import collections

from more_itertools import peekable


class Tokens:
    rule = 'rule'
    command = 'command'
    expression = 'expression'

def count_sequenced(seq, x):
    """
    >>> count_sequenced('aaabc','a')
    3
    >>> count_sequenced('aaabc', 'b')
    0
    """
    cnt=0
    for s in seq:
        if s != x:
            break
        cnt += 1
    return cnt

def is_odd(x):
    """
    >>> is_odd(1)
    True
    >>> is_odd(2)
    False
    """
    return x & 1 == 1

def continued(strip_line):
    r"""
    >>> continued("abcd \\")
    True
    >>> continued("abcd \\\\")
    False
    >>> continued("abcd")
    False
    """
    cs = count_sequenced(reversed(strip_line), '\\')
    return cs > 0 and is_odd(cs)

def glue_multiline(fd, firstline):
    lines = []
    strip_line = firstline.strip()
    while continued(strip_line):
        lines.append(strip_line[:-1].strip())
        # a trailing backslash on the last line of the file continues into nothing
        strip_line = next(fd, '').strip()
    lines.append(strip_line)
    return ' '.join(l for l in lines if l)

def is_rule(line):
    """
    >>> is_rule('build/a.o: a.c a.h')
    True
    >>> is_rule('a.h:')
    True
    >>> is_rule('CFLAGS := -O2')
    False
    >>> is_rule('SOURCES = a.c')
    False
    """
    return ':' in line and '=' not in line

def tokenizer(fd):
    for line in fd:
        strip_line = line.strip()

        # skip empty lines and comments
        if not strip_line or strip_line[0] == '#':
            continue

        if line[0] == '\t':
            yield (Tokens.command, glue_multiline(fd, line))
            continue

        glued = glue_multiline(fd, line)
        if is_rule(glued):
            yield (Tokens.rule, glued)
        else:
            yield (Tokens.expression, glued.strip(' ;\t\n'))


def split_words(text):
    r"""Split a rule side into paths, honouring make's escapes.

    >>> split_words('a.c  b.h')
    ['a.c', 'b.h']
    >>> split_words(r'my\ dir/a.h c.h')
    ['my dir/a.h', 'c.h']
    >>> split_words('cost$$.h')
    ['cost$.h']
    """
    words = []
    current = []
    it = peekable(text)
    for c in it:
        if c == '\\' and it.peek(None) in (' ', ':'):
            current.append(next(it))
        elif c == '$' and it.peek(None) == '$':
            current.append(next(it))
        elif c.isspace():
            if current:
                words.append(''.join(current))
                current = []
        else:
            current.append(c)
    if current:
        words.append(''.join(current))
    return words

def find_separator(line):
    r"""Index of the first ':' not escaped by a backslash, or -1.

    >>> find_separator('a.o: a.c')
    3
    >>> find_separator(r'a\:b.o: a.c')
    6
    >>> find_separator('a.c b.h')
    -1
    """
    escaped = False
    for i, c in enumerate(line):
        if c == ':' and not escaped:
            return i
        escaped = c == '\\' and not escaped
    return -1

def split_rule(line):
    r"""
    >>> split_rule('build/a.o: a.c a.h | build')
    (['build/a.o'], ['a.c', 'a.h'], ['build'])
    >>> split_rule('a.h:')
    (['a.h'], [], [])
    >>> split_rule(r'odd\:name.o: odd.c')
    (['odd:name.o'], ['odd.c'], [])
    """
    colon = find_separator(line)
    if colon < 0:
        return split_words(line), [], []
    targets, rest = line[:colon], line[colon + 1:]
    deps, _, order_deps = rest.partition('|')
    return split_words(targets), split_words(deps), split_words(order_deps)


def parse(fd):
    ast = []
    it = peekable(tokenizer(fd))

    def parse_rule(token):
        targets, deps, order_deps = split_rule(token[1])
        body = parse_body()
        ast.append((
            token[0],
            {
                'targets': targets,
                'deps': deps,
                'order_deps': order_deps,
                'body': body
            })
        )

    def next_belongs_to_rule():
        token, _ = it.peek()
        return token == Tokens.command

    def parse_body():
        body = []
        try:
            while next_belongs_to_rule():
                body.append(next(it))
        except StopIteration:
            pass
        return body

    for token in it:
        if token[0] == Tokens.rule:
            parse_rule(token)
        else:
            # expression, or a command with no rule above it
            ast.append(token)

    return ast


def parse_depfile(fd):
    """Return (target, dependencies) of a compiler-generated dependency file.

    The first rule carries the real edges; the empty rules that follow it
    (one per header, written by -MP) are skipped. Dependencies keep their
    order of first appearance with duplicates dropped.

    Dependency files hold no assignments, so any line with a separator is a
    rule, even when a path in it contains '='.
    """
    for token, line in tokenizer(fd):
        if token == Tokens.command or find_separator(line) < 0:
            continue
        targets, deps, _ = split_rule(line)
        if not targets:
            continue
        return targets[0], list(dict.fromkeys(deps))
    raise ValueError('no rule found in dependency file')


def get_influences(dependencies):
    """Invert a {unit: [dependency, ...]} mapping.

    >>> sorted(get_influences({'a.c': ['a.c', 'b.h'], 'b.c': ['b.c', 'b.h']})['b.h'])
    ['a.c', 'b.c']
    """
    influences = collections.defaultdict(set)

    for unit, deps in dependencies.items():
        influences[unit]
        for k in deps:
            influences[k].add(unit)

    return influences
