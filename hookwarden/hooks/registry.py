"""
Rule base class and the Rule Registry.

A Registry is built once at startup from static configuration and never
mutated afterwards. Rule order is the registration order, so resolving the
same event against the same registry always yields the same list.
"""

from typing import Any, Callable, ClassVar, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Type

from ..errors import ConfigError
from ..ledger.types import LedgerView
from ..logger import logger
from ..matcher import compile_glob, normalize_path
from .types import Event, EventKind, Verdict

RuleFunction = Callable[[Event, LedgerView], Optional[Verdict]]

CONFIG_KEYS = {"id", "type", "applies_to", "appliesTo", "scope", "enabled", "parameters", "description"}


class Rule:
    """
    A single policy check bound to one or more event kinds.

    Subclasses implement ``evaluate``. Rules must not keep state between
    calls; anything a rule needs to remember goes through the LedgerView.

    Attributes:
        id: Unique rule name
        applies_to: Event kinds the rule fires on
        scope: Optional path glob restricting which file writes it sees
    """

    type_name: ClassVar[str] = ""
    default_applies_to: ClassVar[Tuple[EventKind, ...]] = ()

    def __init__(
        self,
        rule_id: str,
        applies_to: Optional[Iterable[Any]] = None,
        scope: Optional[str] = None,
    ):
        if not isinstance(rule_id, str) or not rule_id.strip():
            raise ConfigError(f"rule id must be a non-empty string, got {rule_id!r}")
        self.id = rule_id

        if applies_to is None:
            applies_to = self.default_applies_to
        if isinstance(applies_to, (str, EventKind)):
            applies_to = [applies_to]
        try:
            self.applies_to = frozenset(EventKind.parse(kind) for kind in applies_to)
        except (TypeError, ValueError) as e:
            raise ConfigError(str(e), rule_id) from e
        if not self.applies_to:
            raise ConfigError("applies_to must name at least one event kind", rule_id)

        self.scope = scope
        self._scope_pattern = None
        if scope is not None:
            try:
                self._scope_pattern = compile_glob(scope)
            except ConfigError as e:
                raise ConfigError(f"bad scope: {e}", rule_id) from e

    @classmethod
    def from_config(
        cls,
        rule_id: str,
        applies_to: Optional[Iterable[Any]],
        scope: Optional[str],
        parameters: Mapping[str, Any],
    ) -> "Rule":
        """Build the rule from a configuration entry."""
        try:
            return cls(rule_id, applies_to, scope, **parameters)
        except TypeError as e:
            raise ConfigError(f"bad parameters: {e}", rule_id) from e

    def applies(self, event: Event) -> bool:
        """Check whether this rule should run for an event."""
        if event.kind not in self.applies_to:
            return False
        if self._scope_pattern is None or event.kind is not EventKind.PostToolWrite:
            return True
        return self._scope_pattern.fullmatch(normalize_path(event.path)) is not None

    def evaluate(self, event: Event, ledger: LedgerView) -> Verdict:
        raise NotImplementedError

    def __repr__(self) -> str:
        kinds = ",".join(sorted(kind.name for kind in self.applies_to))
        return f"{type(self).__name__}(id={self.id!r}, applies_to={kinds}, scope={self.scope!r})"


class FunctionRule(Rule):
    """Adapts a plain callable ``(event, ledger) -> Verdict | None`` into a Rule."""

    type_name = "function"

    def __init__(
        self,
        rule_id: str,
        applies_to: Iterable[Any],
        func: RuleFunction,
        scope: Optional[str] = None,
    ):
        super().__init__(rule_id, applies_to, scope)
        self.func = func

    def evaluate(self, event: Event, ledger: LedgerView) -> Verdict:
        result = self.func(event, ledger)
        return Verdict.allow() if result is None else result


def rule(rule_id: str, applies_to: Iterable[Any], scope: Optional[str] = None) -> Callable[[RuleFunction], FunctionRule]:
    """
    Decorator turning a function into a Rule.

    Example:
        @rule("no-secrets", [EventKind.PostToolWrite], scope="**/*.env")
        def no_secrets(event, ledger):
            if "SECRET" in event.content:
                return Verdict.block("secret written to env file")
    """
    def decorator(func: RuleFunction) -> FunctionRule:
        return FunctionRule(rule_id, applies_to, func, scope=scope)
    return decorator


class RuleRegistry:
    """
    Ordered, immutable collection of rules.

    Example:
        registry = RuleRegistry.load(load_rule_configs("hookwarden.yaml"))
        for rule in registry.resolve(event):
            ...
    """

    def __init__(self, rules: Sequence[Rule] = ()):
        seen = set()
        for r in rules:
            if not isinstance(r, Rule):
                raise ConfigError(f"not a Rule: {r!r}")
            if r.id in seen:
                raise ConfigError("duplicate rule id", r.id)
            if not r.applies_to:
                raise ConfigError("applies_to must name at least one event kind", r.id)
            seen.add(r.id)
        self._rules: Tuple[Rule, ...] = tuple(rules)
        self._by_id: Dict[str, Rule] = {r.id: r for r in self._rules}

    @classmethod
    def load(
        cls,
        rule_configs: Iterable[Mapping[str, Any]],
        factories: Optional[Mapping[str, Type[Rule]]] = None,
    ) -> "RuleRegistry":
        """
        Build a registry from configuration entries.

        Args:
            rule_configs: Entries of the form
                ``{id, type, applies_to, scope?, enabled?, parameters?}``
            factories: Rule type name -> Rule class (defaults to the built-ins)

        Raises:
            ConfigError: On duplicate ids, bad scopes, empty applies_to,
                unknown rule types or invalid rule parameters
        """
        if factories is None:
            from ..rules import BUILTIN_RULES
            factories = BUILTIN_RULES

        rules: List[Rule] = []
        seen = set()
        for index, config in enumerate(rule_configs):
            if not isinstance(config, Mapping):
                raise ConfigError(f"rule entry #{index + 1} is not a mapping")

            rule_id = config.get("id")
            if not isinstance(rule_id, str) or not rule_id.strip():
                raise ConfigError(f"rule entry #{index + 1} has no id")
            if rule_id in seen:
                raise ConfigError("duplicate rule id", rule_id)
            seen.add(rule_id)

            unknown = set(config) - CONFIG_KEYS
            if unknown:
                raise ConfigError(f"unknown keys: {', '.join(sorted(unknown))}", rule_id)

            if config.get("enabled", True) is False:
                logger.debug(f"[registry] Skipping disabled rule {rule_id}")
                continue

            rule_type = config.get("type")
            factory = factories.get(rule_type) if isinstance(rule_type, str) else None
            if factory is None:
                raise ConfigError(f"unknown rule type {rule_type!r}", rule_id)

            applies_to = config.get("applies_to", config.get("appliesTo"))
            if applies_to is not None and not applies_to:
                raise ConfigError("applies_to must name at least one event kind", rule_id)

            parameters = config.get("parameters") or {}
            if not isinstance(parameters, Mapping):
                raise ConfigError("parameters must be a mapping", rule_id)

            rules.append(factory.from_config(rule_id, applies_to, config.get("scope"), parameters))
            logger.debug(f"[registry] Loaded {rules[-1]!r}")

        return cls(rules)

    def resolve(self, event: Event) -> List[Rule]:
        """Every rule applicable to the event, in registration order."""
        return [r for r in self._rules if r.applies(event)]

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._by_id.get(rule_id)

    @property
    def rule_ids(self) -> List[str]:
        return [r.id for r in self._rules]

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)
