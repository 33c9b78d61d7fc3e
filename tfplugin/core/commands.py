from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .config import Config

TERRAFORM = "terraform"
CACHE_DIR = ".terraform"
PLAN_FILE = "plan.tfout"

Condition = Callable[[Config], bool]
Renderer = Callable[[Config], List[str]]
FlagRule = Tuple[Condition, Renderer]


@dataclass(frozen=True)
class Command:
    """
    One pipeline stage: a program with its arguments.

    `cwd` of None means "the process working directory" (resolved by the executor).
    """

    name: str
    program: str
    args: Tuple[str, ...] = ()
    cwd: Optional[str] = None

    @property
    def argv(self) -> List[str]:
        return [self.program, *self.args]

    def display(self) -> str:
        return " ".join(self.argv)


def _always(_: Config) -> bool:
    return True


def _tf_bool(v: bool) -> str:
    return "true" if v else "false"


def render_flags(config: Config, rules: Sequence[FlagRule]) -> List[str]:
    """
    Evaluate (condition, renderer) pairs in order and concatenate what they render.
    """
    out: List[str] = []
    for condition, renderer in rules:
        if condition(config):
            out.extend(renderer(config))
    return out


def _var_pairs(config: Config) -> List[str]:
    # Sorted by key so the same config always renders the same argv.
    out: List[str] = []
    for k in sorted(config.vars):
        out.extend(["-var", f"{k}={config.vars[k]}"])
    return out


def _target_pairs(config: Config) -> List[str]:
    out: List[str] = []
    for t in config.targets:
        out.extend(["--target", t])
    return out


def _var_file_pairs(config: Config) -> List[str]:
    out: List[str] = []
    for f in config.var_files:
        out.extend(["-var-file", f])
    return out


LOCK_RULES: List[FlagRule] = [
    # terraform defaults to locking; only an explicit choice is passed on.
    (lambda c: c.init_options.lock is not None, lambda c: [f"-lock={_tf_bool(bool(c.init_options.lock))}"]),
    (lambda c: bool(c.init_options.lock_timeout), lambda c: [f"-lock-timeout={c.init_options.lock_timeout}"]),
]

PARALLELISM_RULE: FlagRule = (lambda c: c.parallelism > 0, lambda c: [f"-parallelism={c.parallelism}"])

INIT_RULES: List[FlagRule] = [
    (_always, lambda c: [f"-backend-config={v}" for v in c.init_options.backend_config]),
    *LOCK_RULES,
    (_always, lambda c: ["-input=false"]),
]

VALIDATE_RULES: List[FlagRule] = [
    (_always, _var_pairs),
]

PLAN_RULES: List[FlagRule] = [
    (lambda c: c.destroy, lambda c: ["-destroy"]),
    (lambda c: not c.destroy, lambda c: [f"-out={PLAN_FILE}"]),
    (_always, _target_pairs),
    (_always, _var_file_pairs),
    (_always, _var_pairs),
    PARALLELISM_RULE,
    *LOCK_RULES,
]

APPLY_RULES: List[FlagRule] = [
    (_always, _target_pairs),
    PARALLELISM_RULE,
    *LOCK_RULES,
    (_always, lambda c: [PLAN_FILE]),
]

DESTROY_RULES: List[FlagRule] = [
    # destroy takes the single-token form of -target
    (_always, lambda c: [f"-target={t}" for t in c.targets]),
    PARALLELISM_RULE,
    *LOCK_RULES,
    (_always, lambda c: ["-force"]),
]


def _terraform(name: str, subcommand: str, config: Config, rules: Sequence[FlagRule]) -> Command:
    return Command(name=name, program=TERRAFORM, args=(subcommand, *render_flags(config, rules)))


def version_command() -> Command:
    return Command(name="version", program=TERRAFORM, args=("version",))


def delete_cache_command() -> Command:
    return Command(name="delete-cache", program="rm", args=("-rf", CACHE_DIR))


def init_command(config: Config) -> Command:
    return _terraform("init", "init", config, INIT_RULES)


def get_modules_command() -> Command:
    return Command(name="get", program=TERRAFORM, args=("get",))


def validate_command(config: Config) -> Command:
    return _terraform("validate", "validate", config, VALIDATE_RULES)


def plan_command(config: Config) -> Command:
    return _terraform("plan", "plan", config, PLAN_RULES)


def apply_command(config: Config) -> Command:
    return _terraform("apply", "apply", config, APPLY_RULES)


def destroy_command(config: Config) -> Command:
    return _terraform("destroy", "destroy", config, DESTROY_RULES)


def terraform_command(config: Config) -> Command:
    if config.destroy:
        return destroy_command(config)
    return apply_command(config)


def update_ca_certificates_command() -> Command:
    return Command(name="update-ca-certificates", program="update-ca-certificates")


def build_commands(config: Config) -> List[Command]:
    """
    Build the full, ordered stage list for a config.

    version -> [update-ca-certificates] -> delete-cache -> init -> get -> validate
    -> plan -> [apply|destroy] -> delete-cache
    """
    commands = [version_command()]
    if config.cacert:
        commands.append(update_ca_certificates_command())
    commands.append(delete_cache_command())
    commands.append(init_command(config))
    commands.append(get_modules_command())
    commands.append(validate_command(config))
    commands.append(plan_command(config))
    if not config.plan:
        commands.append(terraform_command(config))
    commands.append(delete_cache_command())
    return commands
