"""Shell integration snippets.

The snippets make bash or zsh emit the OSC sequences the normalizer
understands: OSC 133 prompt/command marks, OSC 0 titles and OSC 7 working
directory reports. They are meant to be written to a running PTY (for
example a remote shell over ssh) at an interactive prompt.
"""

from typing import Optional

# Bash: body of the prompt hook. $? must be read first.
_BASH_OSC133 = "printf '\\033]133;D;%d\\007' \"$__shellsense_ec\"; printf '\\033]133;A\\007'"
_BASH_TITLE = "printf '\\033]0;%s@%s:%s\\007' \"$USER\" \"${HOSTNAME%%.*}\" \"${PWD/#$HOME/~}\""
_BASH_CWD = "printf '\\033]7;file://%s%s\\007' \"$HOSTNAME\" \"$PWD\""

# DEBUG trap for 133;B, guarded so it fires once per prompt for user commands
_BASH_TRAP = (
    "trap '[[ \"$__shellsense_at_prompt\" == 1 ]] && __shellsense_at_prompt= "
    "&& printf \"\\033]133;B\\007\"' DEBUG"
)

_ZSH_OSC133 = "print -Pn '\\e]133;D;%?\\a\\e]133;A\\a'"
_ZSH_TITLE = "printf '\\033]0;%s@%s:%s\\007' \"$USER\" \"${HOST%%.*}\" \"${PWD/#$HOME/~}\""
_ZSH_CWD = "printf '\\033]7;file://%s%s\\007' \"$HOST\" \"$PWD\""
_ZSH_PREEXEC = "print -Pn '\\e]133;B\\a'"


def build_bash_hooks(title: bool = True, osc133: bool = True, cwd: bool = True) -> Optional[str]:
    """Build the bash hook installation one-liner."""
    body = ["__shellsense_ec=$?"]
    if osc133:
        body.append(_BASH_OSC133)
    if title:
        body.append(_BASH_TITLE)
    if cwd:
        body.append(_BASH_CWD)
    if len(body) == 1:
        return None

    parts = [
        "__shellsense_pc() { " + "; ".join(body) + "; }",
    ]
    if osc133:
        # The guard flag must be the last PROMPT_COMMAND item
        parts.append(
            'PROMPT_COMMAND="__shellsense_pc${PROMPT_COMMAND:+; $PROMPT_COMMAND}; '
            '__shellsense_at_prompt=1"'
        )
        parts.append(_BASH_TRAP)
    else:
        parts.append('PROMPT_COMMAND="__shellsense_pc${PROMPT_COMMAND:+; $PROMPT_COMMAND}"')
    return "; ".join(parts)


def build_zsh_hooks(title: bool = True, osc133: bool = True, cwd: bool = True) -> Optional[str]:
    """Build the zsh hook installation one-liner."""
    body = []
    if osc133:
        # %? must be read first
        body.append(_ZSH_OSC133)
    if title:
        body.append(_ZSH_TITLE)
    if cwd:
        body.append(_ZSH_CWD)
    if not body:
        return None

    parts = [
        "autoload -Uz add-zsh-hook",
        "_shellsense_precmd(){ " + "; ".join(body) + "; }",
        "add-zsh-hook precmd _shellsense_precmd",
    ]
    if osc133:
        parts.append("_shellsense_preexec(){ " + _ZSH_PREEXEC + "; }")
        parts.append("add-zsh-hook preexec _shellsense_preexec")
    return "; ".join(parts)


def build_shell_integration_snippet(
    title: bool = True, osc133: bool = True, cwd: bool = True
) -> Optional[str]:
    """Build a snippet enabling shell integration in the running shell.

    The snippet detects bash or zsh at runtime and is wrapped in
    stty -echo / stty echo so the setup is not echoed to the terminal.

    Args:
        title: Report user@host:dir as the window title (OSC 0).
        osc133: Report prompt and command boundaries (OSC 133).
        cwd: Report the working directory (OSC 7).

    Returns:
        Text to send to the PTY, or None if nothing is enabled.
    """
    bash = build_bash_hooks(title=title, osc133=osc133, cwd=cwd)
    zsh = build_zsh_hooks(title=title, osc133=osc133, cwd=cwd)
    if bash is None or zsh is None:
        return None

    hooks = (
        f'if [ -n "$ZSH_VERSION" ]; then {zsh}; '
        f'elif [ -n "$BASH_VERSION" ]; then {bash}; fi'
    )
    return f"stty -echo\n{hooks}\nstty echo"
