from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from config.domain_exceptions import ConfigurationError
from deltas.dispatcher.config import get_engine_config
from deltas.dispatcher.engine import resolve_rules_path
from deltas.errors import MalformedRuleError
from deltas.rules import POLICY_FAIL, load_rules_file


class Command(BaseCommand):
    help = "Validate a delta rules file and print a summary of each rule."

    def add_arguments(self, parser):
        parser.add_argument("path", nargs="?", help="Rules file (defaults to DELTA_NOTIFIER['rules_path']).")

    def handle(self, *args, **options):
        """Load the rules with the strict policy and report them."""
        path = options.get("path") or str(resolve_rules_path(get_engine_config().rules_path))

        try:
            rules = load_rules_file(path, policy=POLICY_FAIL)
        except (MalformedRuleError, ConfigurationError) as exc:
            raise CommandError(str(exc)) from exc

        for rule in rules:
            constrained = ", ".join(sorted(rule.match)) or "any change"
            self.stdout.write(
                f"{rule.name}: {rule.callback.method} {rule.callback.url} "
                f"[match: {constrained}; format {rule.options.resource_format}; "
                f"grace {rule.options.grace_period_ms}ms; "
                f"fold={rule.options.fold_effective_changes}; "
                f"ignoreFromSelf={rule.options.ignore_from_self}]"
            )
        self.stdout.write(self.style.SUCCESS(f"{len(rules)} rule(s) OK in {path}"))
