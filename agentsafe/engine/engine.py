"""
Policy engine for Agent-SAFE Grid.

The engine applies a tenant's rules to one message, in sequence order:

1. Disabled rules are skipped.
2. Each enabled rule is evaluated against the current working text, so
   transforms compose left to right.
3. A block verdict stops evaluation immediately.
4. A transform verdict replaces the working text.

An evaluator that raises never lets the message through: the exception is
logged and turned into a block verdict for that rule.

A policy without advanced rules is enforced through rules synthesized from
its legacy flags (PII redaction, then jailbreak detection).
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

from agentsafe.engine.context import (
    Direction,
    EnforcementResult,
    EvaluationContext,
    FiredRule,
    RuleVerdict,
    VerdictAction,
)
from agentsafe.engine.evaluators import EvaluatorRegistry
from agentsafe.models.policy import PolicyConfig
from agentsafe.models.rules import JailbreakConfig, PIIConfig, PolicyRule, RuleType, Severity

logger = logging.getLogger("agentsafe.engine")

LEGACY_PII_RULE_ID = "legacy-pii-redaction"
LEGACY_JAILBREAK_RULE_ID = "legacy-jailbreak-detection"

# Rule types whose default evaluators never transform the text
NON_TRANSFORMING_TYPES = frozenset(
    {
        RuleType.CONTENT,
        RuleType.BUDGET,
        RuleType.RBAC,
        RuleType.JAILBREAK,
        RuleType.COMPLIANCE,
        RuleType.GEO,
        RuleType.TIME,
    }
)


def synthesize_legacy_rules(policy: PolicyConfig) -> list[PolicyRule]:
    """
    Build the rules implied by the legacy flags of a policy.

    Only used when the policy has no advanced rules.

    Args:
        policy: The tenant policy.

    Returns:
        A PII rule (email and phone, prompts only) when ``pii_redaction`` is set and a
        JAILBREAK rule (sensitivity 0.8) when ``jailbreak_detection`` is
        set, in that order.
    """
    rules: list[PolicyRule] = []
    if policy.pii_redaction:
        rules.append(
            PolicyRule(
                id=LEGACY_PII_RULE_ID,
                type=RuleType.PII,
                name="PII Redaction",
                description="Legacy PII redaction flag",
                severity=Severity.MEDIUM,
                config=PIIConfig(patterns=("email", "phone"), scope="input"),
            )
        )
    if policy.jailbreak_detection:
        rules.append(
            PolicyRule(
                id=LEGACY_JAILBREAK_RULE_ID,
                type=RuleType.JAILBREAK,
                name="Anti-Jailbreak",
                description="Legacy jailbreak detection flag",
                severity=Severity.HIGH,
                config=JailbreakConfig(sensitivity=0.8),
            )
        )
    return rules


class PolicyEngine:
    """
    Evaluates a PolicyConfig against a message.

    The engine holds no per-tenant state and can be shared by concurrent
    turns of any tenant.

    Example:
        Enforcing a policy on a prompt::

            engine = PolicyEngine()
            result = engine.enforce(policy, "email me at a@b.com")

            if result.allowed:
                send(result.final_text)
            else:
                print(f"Blocked by {result.blocking_rule}")
    """

    def __init__(
        self,
        registry: EvaluatorRegistry | None = None,
        parallel_prescreen: bool = False,
        max_workers: int = 4,
    ) -> None:
        """
        Initialize the policy engine.

        Args:
            registry: Evaluator registry. Defaults to the built-in evaluators.
            parallel_prescreen: Evaluate the leading run of non-transforming
                rules concurrently. Results are merged back in rule order,
                so the outcome is identical to sequential evaluation.
            max_workers: Thread pool size for the prescreen.
        """
        self._registry = registry or EvaluatorRegistry()
        self._parallel_prescreen = parallel_prescreen
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()

    @property
    def registry(self) -> EvaluatorRegistry:
        return self._registry

    def effective_rules(self, policy: PolicyConfig) -> list[tuple[PolicyRule, bool]]:
        """
        Return the enabled rules to evaluate, in order.

        Returns:
            List of (rule, synthesized) pairs.
        """
        if not policy.advanced_rules:
            return [(rule, True) for rule in synthesize_legacy_rules(policy)]
        return [(rule, False) for rule in policy.advanced_rules if rule.enabled]

    def enforce(
        self,
        policy: PolicyConfig,
        message: str,
        context: EvaluationContext | None = None,
    ) -> EnforcementResult:
        """
        Enforce a policy on one message.

        Args:
            policy: The tenant policy. Never modified.
            message: The prompt or response text.
            context: Request facts for context-based rules.

        Returns:
            EnforcementResult with the final text, the fired rules in order
            and the blocking rule if one blocked.
        """
        context = context or EvaluationContext()
        rules = self.effective_rules(policy)
        prescreened = self._prescreen(rules, message, context)

        text = message
        fired: list[FiredRule] = []
        for index, (rule, synthesized) in enumerate(rules):
            verdict = prescreened.get(index)
            if verdict is None:
                verdict = self._evaluate(rule, text, context)
            elif verdict.action == VerdictAction.TRANSFORM:
                # Later prescreen results were computed on the old text
                prescreened = {}

            if verdict.fired or verdict.action != VerdictAction.ALLOW:
                fired.append(
                    FiredRule(
                        rule_id=rule.id,
                        rule_type=rule.type,
                        severity=rule.severity,
                        verdict=verdict,
                        synthesized=synthesized,
                    )
                )

            if verdict.action == VerdictAction.BLOCK:
                logger.info(
                    f"Rule {rule.id} ({rule.type.value}) blocked {context.direction.value} "
                    f"for tenant {context.tenant_id or '-'}: {verdict.reason}"
                )
                return EnforcementResult(
                    original_text=message,
                    final_text=text,
                    allowed=False,
                    fired_rules=tuple(fired),
                    blocking_rule=rule.id,
                    direction=context.direction,
                )
            if verdict.action == VerdictAction.TRANSFORM and verdict.transformed_text is not None:
                text = verdict.transformed_text

        return EnforcementResult(
            original_text=message,
            final_text=text,
            allowed=True,
            fired_rules=tuple(fired),
            direction=context.direction,
        )

    def enforce_response(
        self,
        policy: PolicyConfig,
        text: str,
        context: EvaluationContext,
    ) -> EnforcementResult:
        """
        Enforce a policy on a model response.

        Only PII rules apply to responses; each one checks its own scope.
        The other rule types gate the prompt and are not evaluated again.
        """
        pii_rules = [rule for rule, _ in self.effective_rules(policy) if rule.type == RuleType.PII]
        response_policy = PolicyConfig(
            pii_redaction=False,
            jailbreak_detection=False,
            max_budget=policy.max_budget,
            advanced_rules=pii_rules,
        )
        return self.enforce(
            response_policy, text, replace(context, direction=Direction.OUTPUT)
        )

    def _evaluate(
        self, rule: PolicyRule, text: str, context: EvaluationContext
    ) -> RuleVerdict:
        """Evaluate one rule, turning any failure into a block verdict."""
        try:
            verdict = self._registry.evaluate(rule, text, context)
        except Exception as e:
            logger.exception(
                f"Evaluator for rule {rule.id} ({rule.type.value}) failed, blocking"
            )
            return RuleVerdict.block(
                f"Rule evaluation failed: {type(e).__name__}",
                fail_closed=True,
                error=str(e),
            )

        if not isinstance(verdict, RuleVerdict) or (
            verdict.action == VerdictAction.TRANSFORM and verdict.transformed_text is None
        ):
            logger.error(
                f"Evaluator for rule {rule.id} ({rule.type.value}) returned an "
                f"invalid verdict, blocking"
            )
            return RuleVerdict.block("Rule evaluation returned an invalid verdict", fail_closed=True)
        return verdict

    def _prescreen(
        self,
        rules: list[tuple[PolicyRule, bool]],
        message: str,
        context: EvaluationContext,
    ) -> dict[int, RuleVerdict]:
        """Evaluate the leading non-transforming rules concurrently."""
        if not self._parallel_prescreen:
            return {}

        prefix = []
        for rule, _ in rules:
            if rule.type not in NON_TRANSFORMING_TYPES:
                break
            prefix.append(rule)
        if len(prefix) < 2:
            return {}

        executor = self._get_executor()
        futures = [executor.submit(self._evaluate, rule, message, context) for rule in prefix]
        return {index: future.result() for index, future in enumerate(futures)}

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="agentsafe-prescreen"
                )
            return self._executor

    def close(self) -> None:
        """Shut down the prescreen thread pool, if one was started."""
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
