"""
Turn orchestration for Agent-SAFE Grid.

The SafetyGateway sits between a user's chat turn and the upstream model:

1. Load the tenant policy and open the tenant's ledger.
2. Project the turn's cost and enforce the policy on the prompt.
3. Write the redaction entry, or the violation entry of a block.
4. Call the model adapter under a timeout.
5. Apply response-scope PII rules to the reply.
6. Debit the ledger with the actual usage and write the inference entry.

A turn holds its tenant's lock from the budget check to the final audit
write, so turns of one tenant run one after the other while turns of
different tenants run concurrently. Ledger and audit writes happen only
once the model call has definitively succeeded or failed: a cancelled turn
writes nothing after its prompt checks.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping, Sequence

from agentsafe.adapters.base import ModelAdapter, ModelReply, ProviderConfig
from agentsafe.audit.recorder import AuditRecorder
from agentsafe.engine.context import EnforcementResult, EvaluationContext
from agentsafe.engine.engine import PolicyEngine
from agentsafe.engine.service import TenantPolicyService
from agentsafe.exceptions import (
    EnforcementError,
    PolicyViolation,
    UpstreamError,
    ValidationError,
)
from agentsafe.metering.ledger import MeteringLedger, estimate_cost, project_tokens
from agentsafe.models.audit import AuditAction, AuditLogEntry, AuditStatus
from agentsafe.models.messages import ChatMessage, Role
from agentsafe.models.metering import MeteringStats
from agentsafe.models.policy import PolicyConfig

logger = logging.getLogger("agentsafe.gateway")

DEFAULT_SYSTEM_INSTRUCTION = "You are a helpful, security-conscious enterprise assistant."
FAILURE_NOTICE = "Error: Unable to complete request due to safety policy or connection failure."


@dataclass(frozen=True)
class TurnResult:
    """
    Outcome of a completed chat turn.

    Attributes:
        user_message: The prompt as forwarded (redacted if needed), signed.
        model_message: The reply as delivered, signed.
        stats: Tenant counters after the debit.
        prompt_result: Enforcement result of the prompt.
        response_result: Enforcement result of the reply.
        audit_entries: Entries written by the turn, in order.
        projected_cost: Cost projected before the call.
    """

    user_message: ChatMessage
    model_message: ChatMessage
    stats: MeteringStats
    prompt_result: EnforcementResult
    response_result: EnforcementResult
    audit_entries: tuple[AuditLogEntry, ...] = ()
    projected_cost: float = 0.0

    @property
    def warnings(self) -> list[str]:
        return self.prompt_result.warnings + self.response_result.warnings

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_message": self.user_message.to_dict(),
            "model_message": self.model_message.to_dict(),
            "stats": self.stats.to_dict(),
            "fired_rules": [f.to_dict() for f in self.prompt_result.fired_rules],
            "response_fired_rules": [f.to_dict() for f in self.response_result.fired_rules],
            "warnings": self.warnings,
            "audit_entries": [e.to_dict() for e in self.audit_entries],
            "projected_cost": self.projected_cost,
        }


def failure_message() -> ChatMessage:
    """Flagged system message shown in place of a reply when a turn fails."""
    return ChatMessage(role=Role.SYSTEM, content=FAILURE_NOTICE, flagged=True)


class SafetyGateway:
    """
    Runs chat turns through policy enforcement, metering and audit.

    Example:
        Processing one turn::

            gateway = SafetyGateway(
                engine=PolicyEngine(),
                policies=TenantPolicyService(),
                ledger=MeteringLedger(),
                recorder=AuditRecorder(),
                adapter=EchoAdapter(),
                providers=DEFAULT_PROVIDERS,
            )
            result = await gateway.process_turn(
                "tenant-a", "user_1", "email me at a@b.com", "gemini"
            )
    """

    def __init__(
        self,
        engine: PolicyEngine,
        policies: TenantPolicyService,
        ledger: MeteringLedger,
        recorder: AuditRecorder,
        adapter: ModelAdapter,
        providers: Iterable[ProviderConfig] = (),
        timeout: float = 10.0,
        chars_per_token: int = 4,
        max_message_length: int = 32000,
        system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            engine: Policy engine.
            policies: Tenant policy service (the tenant store).
            ledger: Metering ledger.
            recorder: Audit recorder.
            adapter: Upstream model adapter.
            providers: Providers that turns may be routed to.
            timeout: Model call timeout in seconds.
            chars_per_token: Characters per token for cost projection.
            max_message_length: Longest accepted prompt in characters.
            system_instruction: Default system instruction.
        """
        self._engine = engine
        self._policies = policies
        self._ledger = ledger
        self._recorder = recorder
        self._adapter = adapter
        self._providers = {p.id: p for p in providers}
        self._timeout = timeout
        self._chars_per_token = chars_per_token
        self._max_message_length = max_message_length
        self._system_instruction = system_instruction
        self._tenant_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def providers(self) -> dict[str, ProviderConfig]:
        return dict(self._providers)

    def register_provider(self, provider: ProviderConfig) -> None:
        self._providers[provider.id] = provider

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        # Entries live only while a turn holds or awaits the lock.
        lock = self._tenant_locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._tenant_locks[tenant_id] = lock
        return lock

    def resolve_provider(self, provider: ProviderConfig | str) -> ProviderConfig:
        """
        Resolve a provider id to its configuration.

        Raises:
            ValidationError: If the provider is unknown or disabled.
        """
        if isinstance(provider, ProviderConfig):
            config = provider
        else:
            found = self._providers.get(provider)
            if found is None:
                raise ValidationError(
                    f"Unknown provider: {provider}",
                    details={"provider_id": provider, "available": sorted(self._providers)},
                )
            config = found
        if not config.enabled:
            raise ValidationError(
                f"Provider {config.id} is disabled", details={"provider_id": config.id}
            )
        return config

    def _context(
        self,
        tenant_id: str,
        user: str,
        context: EvaluationContext | Mapping[str, Any] | None,
        stats: MeteringStats,
        projected_cost: float,
    ) -> EvaluationContext:
        if isinstance(context, EvaluationContext):
            return replace(
                context,
                tenant_id=tenant_id,
                user=user,
                total_cost=stats.total_cost,
                projected_cost=projected_cost,
            )
        return EvaluationContext.from_dict(
            dict(context or {}),
            tenant_id=tenant_id,
            user=user,
            total_cost=stats.total_cost,
            projected_cost=projected_cost,
        )

    def check(
        self,
        tenant_id: str,
        message: str,
        provider: ProviderConfig | str | None = None,
        context: EvaluationContext | Mapping[str, Any] | None = None,
        user: str = "",
    ) -> EnforcementResult:
        """
        Dry-run the prompt checks of a turn.

        Nothing is written to the ledger or the audit log.
        """
        policy = self._policies.load(tenant_id)
        stats = self._ledger.snapshot(tenant_id)
        cost_per_1k = 0.0
        if provider is not None:
            cost_per_1k = self.resolve_provider(provider).cost_per_1k
        projected = estimate_cost(project_tokens(message, self._chars_per_token), cost_per_1k)
        return self._engine.enforce(
            policy, message, self._context(tenant_id, user, context, stats, projected)
        )

    async def process_turn(
        self,
        tenant_id: str,
        user: str,
        message: str,
        provider: ProviderConfig | str,
        history: Sequence[ChatMessage] = (),
        context: EvaluationContext | Mapping[str, Any] | None = None,
        system_instruction: str | None = None,
    ) -> TurnResult:
        """
        Run one chat turn end to end.

        Args:
            tenant_id: The tenant.
            user: Acting user.
            message: The prompt as typed.
            provider: Provider id or configuration.
            history: Earlier messages of the session.
            context: Request facts for context-based rules.
            system_instruction: Overrides the default instruction.

        Returns:
            TurnResult with the signed messages and updated counters.

        Raises:
            ValidationError: If the message or provider is invalid.
            PolicyViolation: If a rule blocked the prompt or the reply.
            UpstreamError: If the model call failed or timed out.
        """
        if not message or not message.strip():
            raise ValidationError("Message must not be empty")
        if len(message) > self._max_message_length:
            raise ValidationError(
                f"Message exceeds {self._max_message_length} characters",
                details={"length": len(message)},
            )
        config = self.resolve_provider(provider)

        async with self._lock_for(tenant_id):
            return await self._run_turn(
                tenant_id,
                user,
                message,
                config,
                history,
                context,
                system_instruction or self._system_instruction,
            )

    async def _run_turn(
        self,
        tenant_id: str,
        user: str,
        message: str,
        provider: ProviderConfig,
        history: Sequence[ChatMessage],
        context: EvaluationContext | Mapping[str, Any] | None,
        system_instruction: str,
    ) -> TurnResult:
        policy = self._policies.load(tenant_id)
        stats = self._ledger.open(tenant_id, policy.max_budget)
        projected = estimate_cost(
            project_tokens(message, self._chars_per_token), provider.cost_per_1k
        )
        eval_context = self._context(tenant_id, user, context, stats, projected)
        entries: list[AuditLogEntry] = []

        prompt_result = self._engine.enforce(policy, message, eval_context)
        if prompt_result.redacted:
            entries.append(
                self._recorder.record_entry(
                    tenant_id,
                    action=AuditAction.PII_REDACTION,
                    user=user,
                    details="Redacted sensitive PII from user prompt",
                    status=AuditStatus.VIOLATION,
                    signing_input=message,
                    rule_id=prompt_result.transforms[0].rule_id,
                )
            )
        if not prompt_result.allowed:
            self._raise_violation(tenant_id, user, policy, prompt_result, message)

        forwarded = prompt_result.final_text
        signature, timestamp = self._recorder.sign(forwarded)
        user_message = ChatMessage(
            role=Role.USER,
            content=forwarded,
            timestamp=timestamp,
            provider=provider.name,
            signature=signature,
            redacted=prompt_result.redacted,
        )

        reply = await self._call_model(
            tenant_id, provider, system_instruction, history, forwarded
        )

        response_result = self._engine.enforce_response(policy, reply.text, eval_context)
        if not response_result.allowed:
            # Debit the generated reply before refusing it
            self._ledger.record(tenant_id, reply.tokens, provider.cost_per_1k, policy.max_budget)
            self._raise_violation(tenant_id, provider.name, policy, response_result, reply.text)
        if response_result.redacted:
            entries.append(
                self._recorder.record_entry(
                    tenant_id,
                    action=AuditAction.PII_REDACTION,
                    user=provider.name,
                    details="Redacted sensitive PII from model response",
                    status=AuditStatus.VIOLATION,
                    signing_input=reply.text,
                    rule_id=response_result.transforms[0].rule_id,
                )
            )

        delivered = response_result.final_text
        stats = self._ledger.record(
            tenant_id, reply.tokens, provider.cost_per_1k, policy.max_budget
        )
        model_name = provider.selected_model or (
            provider.models[0] if provider.models else "default model"
        )
        inference = self._recorder.record_entry(
            tenant_id,
            action=AuditAction.MODEL_INFERENCE,
            user=provider.name or provider.id,
            details=f"Generated {reply.tokens} tokens via {model_name}",
            status=AuditStatus.SUCCESS,
            signing_input=delivered,
        )
        entries.append(inference)

        model_message = ChatMessage(
            role=Role.MODEL,
            content=delivered,
            timestamp=inference.timestamp,
            provider=provider.name,
            tokens=reply.tokens,
            signature=inference.hash,
            redacted=response_result.redacted,
        )
        return TurnResult(
            user_message=user_message,
            model_message=model_message,
            stats=stats,
            prompt_result=prompt_result,
            response_result=response_result,
            audit_entries=tuple(entries),
            projected_cost=projected,
        )

    async def _call_model(
        self,
        tenant_id: str,
        provider: ProviderConfig,
        system_instruction: str,
        history: Sequence[ChatMessage],
        message: str,
    ) -> ModelReply:
        """Call the adapter under the timeout. Failures become UpstreamError."""
        visible_history = [m for m in history if m.role != Role.SYSTEM]
        try:
            reply = await asyncio.wait_for(
                self._adapter.send(provider.id, system_instruction, visible_history, message),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            error = UpstreamError(
                f"Model call to {provider.id} timed out after {self._timeout:g}s",
                provider_id=provider.id,
                timed_out=True,
            )
            self._record_upstream_error(tenant_id, provider, error, message)
            raise error from None
        except UpstreamError as e:
            self._record_upstream_error(tenant_id, provider, e, message)
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = UpstreamError(
                f"Model call to {provider.id} failed: {type(e).__name__}",
                provider_id=provider.id,
                details={"error": str(e)},
            )
            self._record_upstream_error(tenant_id, provider, error, message)
            raise error from e

        if (
            not isinstance(reply, ModelReply)
            or isinstance(reply.tokens, bool)
            or not isinstance(reply.tokens, int)
            or reply.tokens < 0
        ):
            error = UpstreamError(
                f"Model adapter for {provider.id} returned an invalid reply",
                provider_id=provider.id,
            )
            self._record_upstream_error(tenant_id, provider, error, message)
            raise error
        return reply

    def _record_upstream_error(
        self,
        tenant_id: str,
        provider: ProviderConfig,
        error: UpstreamError,
        message: str,
    ) -> None:
        logger.warning(f"Upstream failure for tenant {tenant_id}: {error.message}")
        self._recorder.record_entry(
            tenant_id,
            action=AuditAction.MODEL_ERROR,
            user=provider.name or provider.id,
            details=error.message,
            status=AuditStatus.ERROR,
            signing_input=message,
        )

    def _raise_violation(
        self,
        tenant_id: str,
        user: str,
        policy: PolicyConfig,
        result: EnforcementResult,
        content: str,
    ) -> None:
        """Write the single violation entry of a block and raise."""
        blocking = result.blocking
        if blocking is None:
            raise EnforcementError(
                "Cannot record a violation for a result with no blocking rule",
                details={"tenant_id": tenant_id, "direction": result.direction.value},
            )
        rule = policy.get_rule(blocking.rule_id)
        name = rule.name if rule is not None else blocking.rule_type.value
        reason = blocking.verdict.reason
        entry = self._recorder.record_entry(
            tenant_id,
            action=AuditAction.POLICY_VIOLATION,
            user=user,
            details=f"Blocked by {name} ({blocking.rule_type.value}): {reason}",
            status=AuditStatus.VIOLATION,
            signing_input=content,
            rule_id=blocking.rule_id,
        )
        raise PolicyViolation(
            f"Request blocked by policy rule {blocking.rule_id}",
            rule_id=blocking.rule_id,
            severity=blocking.severity.value,
            rule_type=blocking.rule_type.value,
            reason=reason,
            details={"audit_entry_id": entry.id, "direction": result.direction.value},
        )
