"""Desired-state catalog for AVD monitoring.

Static content (alert KQL, performance counters, event log queries, diagnostic
log categories) and the functions that turn it into ResourceDefinitions for
one environment.

Naming:
    {prefix}-alert-{key}            scheduled query alerts
    {prefix}-dcr-{key}              data collection rules
    {prefix}-diag-{type}-{name}     diagnostic settings (type: hp, ag, ws)

Every name starts with the prefix so one bulk listing per scope can find
all existing avdmon resources.
"""

from dataclasses import dataclass

from avdmon.models import ResourceDefinition, ResourceKind
from avdmon.resource_client import AvdResource, WorkspaceInfo


@dataclass(frozen=True)
class AlertTemplate:
    """One scheduled query alert; severity None means 'use the configured one'."""

    key: str
    description: str
    query: str
    severity: int | None = None
    threshold: int = 0
    operator: str = ">"
    evaluation_frequency: str = "5m"
    window_size: str = "15m"


ALERT_TEMPLATES: tuple[AlertTemplate, ...] = (
    AlertTemplate(
        key="session-host-unhealthy",
        description="Session host agent reports a status other than Available",
        query=(
            "WVDAgentHealthStatus "
            '| where Status != "Available" '
            "| summarize arg_max(TimeGenerated, *) by SessionHostName "
            "| project SessionHostName, Status, LastHeartBeat"
        ),
        severity=1,
    ),
    AlertTemplate(
        key="connection-failures",
        description="Repeated client-side connection failures to the host pool",
        query=(
            "WVDErrors "
            "| where ServiceError == false "
            "| summarize Failures = count() by CodeSymbolic, UserName "
            "| where Failures >= 5"
        ),
    ),
    AlertTemplate(
        key="high-cpu",
        description="Session host average CPU above 90%",
        query=(
            "Perf "
            '| where ObjectName == "Processor Information" and CounterName == "% Processor Time" '
            'and InstanceName == "_Total" '
            "| summarize AvgCPU = avg(CounterValue) by Computer "
            "| where AvgCPU > 90"
        ),
    ),
    AlertTemplate(
        key="low-memory",
        description="Session host available memory below 1 GB",
        query=(
            "Perf "
            '| where ObjectName == "Memory" and CounterName == "Available Mbytes" '
            "| summarize AvgAvailableMB = avg(CounterValue) by Computer "
            "| where AvgAvailableMB < 1024"
        ),
    ),
    AlertTemplate(
        key="low-disk",
        description="Session host OS disk free space below 10%",
        query=(
            "Perf "
            '| where ObjectName == "LogicalDisk" and CounterName == "% Free Space" '
            'and InstanceName == "C:" '
            "| summarize FreeSpace = min(CounterValue) by Computer "
            "| where FreeSpace < 10"
        ),
        evaluation_frequency="15m",
        window_size="30m",
    ),
    AlertTemplate(
        key="fslogix-errors",
        description="FSLogix profile container errors on session hosts",
        query=(
            "Event "
            '| where Source == "Microsoft-FSLogix-Apps" and EventLevelName == "Error" '
            "| summarize Errors = count() by Computer, EventID"
        ),
        severity=1,
    ),
    AlertTemplate(
        key="input-delay",
        description="User input delay per session above 2 seconds",
        query=(
            "Perf "
            '| where ObjectName == "User Input Delay per Session" '
            'and CounterName == "Max Input Delay" '
            "| summarize AvgDelayMs = avg(CounterValue) by Computer "
            "| where AvgDelayMs > 2000"
        ),
    ),
    AlertTemplate(
        key="high-rtt",
        description="Connection round-trip time above 200 ms",
        query=(
            "WVDConnectionNetworkData "
            "| summarize AvgRTT = avg(EstRoundTripTimeInMs) by CorrelationId "
            "| where AvgRTT > 200"
        ),
        severity=3,
    ),
)

DIAGNOSTIC_CATEGORIES: dict[str, tuple[str, ...]] = {
    "hostpools": (
        "Checkpoint",
        "Error",
        "Management",
        "Connection",
        "HostRegistration",
        "AgentHealthStatus",
        "NetworkData",
        "SessionHostManagement",
        "ConnectionGraphicsData",
        "AutoscaleEvaluationPooled",
    ),
    "applicationgroups": ("Checkpoint", "Error", "Management"),
    "workspaces": ("Checkpoint", "Error", "Management", "Feed"),
}

_TYPE_ABBREVIATIONS = {"hostpools": "hp", "applicationgroups": "ag", "workspaces": "ws"}

PERFORMANCE_COUNTERS: tuple[str, ...] = (
    "\\LogicalDisk(C:)\\% Free Space",
    "\\LogicalDisk(C:)\\Avg. Disk Queue Length",
    "\\LogicalDisk(C:)\\Avg. Disk sec/Transfer",
    "\\LogicalDisk(C:)\\Current Disk Queue Length",
    "\\Memory\\Available Mbytes",
    "\\Memory\\Page Faults/sec",
    "\\Memory\\Pages/sec",
    "\\Memory\\% Committed Bytes In Use",
    "\\PhysicalDisk(*)\\Avg. Disk Queue Length",
    "\\PhysicalDisk(*)\\Avg. Disk sec/Read",
    "\\PhysicalDisk(*)\\Avg. Disk sec/Transfer",
    "\\PhysicalDisk(*)\\Avg. Disk sec/Write",
    "\\Processor Information(_Total)\\% Processor Time",
    "\\Terminal Services(*)\\Active Sessions",
    "\\Terminal Services(*)\\Inactive Sessions",
    "\\Terminal Services(*)\\Total Sessions",
    "\\User Input Delay per Process(*)\\Max Input Delay",
    "\\User Input Delay per Session(*)\\Max Input Delay",
    "\\RemoteFX Network(*)\\Current TCP RTT",
    "\\RemoteFX Network(*)\\Current UDP Bandwidth",
)

PERFORMANCE_SAMPLE_SECONDS = 30

_ALL_LEVELS = "[System[(Level=2 or Level=3 or Level=4 or Level=0)]]"

EVENT_LOG_QUERIES: tuple[str, ...] = (
    "Application!*[System[(Level=2 or Level=3)]]",
    "System!*[System[(Level=2 or Level=3)]]",
    f"Microsoft-Windows-TerminalServices-LocalSessionManager/Operational!*{_ALL_LEVELS}",
    f"Microsoft-Windows-TerminalServices-RemoteConnectionManager/Admin!*{_ALL_LEVELS}",
    f"Microsoft-FSLogix-Apps/Operational!*{_ALL_LEVELS}",
    f"Microsoft-FSLogix-Apps/Admin!*{_ALL_LEVELS}",
)

LA_DESTINATION = "avdmon-workspace"


@dataclass(frozen=True)
class CatalogContext:
    """Environment values definitions are rendered against."""

    prefix: str
    subscription_id: str
    resource_group: str
    workspace: WorkspaceInfo
    action_group_id: str | None = None
    alert_severity: int = 2

    @property
    def resource_group_scope(self) -> str:
        return f"/subscriptions/{self.subscription_id}/resourceGroups/{self.resource_group}"


def alert_name(prefix: str, key: str) -> str:
    return f"{prefix}-alert-{key}"


def build_alert_definitions(ctx: CatalogContext) -> list[ResourceDefinition]:
    """Scheduled query alerts over the workspace, wired to the action group."""
    definitions = []
    for template in ALERT_TEMPLATES:
        severity = ctx.alert_severity if template.severity is None else template.severity
        definitions.append(
            ResourceDefinition(
                name=alert_name(ctx.prefix, template.key),
                kind=ResourceKind.ALERT,
                description=template.description,
                category=f"Sev{severity}",
                scope=ctx.resource_group_scope,
                payload={
                    "query": template.query,
                    "severity": severity,
                    "threshold": template.threshold,
                    "operator": template.operator,
                    "evaluation_frequency": template.evaluation_frequency,
                    "window_size": template.window_size,
                    "workspace_id": ctx.workspace.id,
                    "action_group_id": ctx.action_group_id,
                },
            )
        )
    return definitions


def build_diagnostic_definitions(
    ctx: CatalogContext, resources: list[AvdResource]
) -> list[ResourceDefinition]:
    """One diagnostic setting per AVD resource, forwarding its log categories."""
    definitions = []
    for resource in sorted(resources, key=lambda r: (r.short_type, r.name)):
        categories = DIAGNOSTIC_CATEGORIES.get(resource.short_type)
        if not categories:
            continue
        abbreviation = _TYPE_ABBREVIATIONS[resource.short_type]
        definitions.append(
            ResourceDefinition(
                name=f"{ctx.prefix}-diag-{abbreviation}-{resource.name}",
                kind=ResourceKind.DIAGNOSTIC_SETTING,
                description=f"Forward {resource.short_type} '{resource.name}' logs to "
                f"{ctx.workspace.name}",
                category=",".join(categories),
                scope=resource.id,
                payload={"workspace_id": ctx.workspace.id, "categories": categories},
            )
        )
    return definitions


def build_dcr_definitions(ctx: CatalogContext) -> list[ResourceDefinition]:
    """Performance-counter and event-log data collection rules."""
    destinations = {
        "logAnalytics": [{"workspaceResourceId": ctx.workspace.id, "name": LA_DESTINATION}]
    }
    perf_properties = {
        "description": "AVD session host performance counters",
        "dataSources": {
            "performanceCounters": [
                {
                    "name": "avdPerfCounters",
                    "streams": ["Microsoft-Perf"],
                    "samplingFrequencyInSeconds": PERFORMANCE_SAMPLE_SECONDS,
                    "counterSpecifiers": list(PERFORMANCE_COUNTERS),
                }
            ]
        },
        "destinations": destinations,
        "dataFlows": [{"streams": ["Microsoft-Perf"], "destinations": [LA_DESTINATION]}],
    }
    event_properties = {
        "description": "AVD session host Windows event logs",
        "dataSources": {
            "windowsEventLogs": [
                {
                    "name": "avdEventLogs",
                    "streams": ["Microsoft-Event"],
                    "xPathQueries": list(EVENT_LOG_QUERIES),
                }
            ]
        },
        "destinations": destinations,
        "dataFlows": [{"streams": ["Microsoft-Event"], "destinations": [LA_DESTINATION]}],
    }

    return [
        ResourceDefinition(
            name=f"{ctx.prefix}-dcr-perf",
            kind=ResourceKind.DATA_COLLECTION_RULE,
            description=f"Collect {len(PERFORMANCE_COUNTERS)} performance counters",
            category="performance",
            scope=ctx.resource_group_scope,
            payload={"location": ctx.workspace.location, "properties": perf_properties},
        ),
        ResourceDefinition(
            name=f"{ctx.prefix}-dcr-events",
            kind=ResourceKind.DATA_COLLECTION_RULE,
            description=f"Collect {len(EVENT_LOG_QUERIES)} Windows event log queries",
            category="events",
            scope=ctx.resource_group_scope,
            payload={"location": ctx.workspace.location, "properties": event_properties},
        ),
    ]


__all__ = [
    "ALERT_TEMPLATES",
    "DIAGNOSTIC_CATEGORIES",
    "EVENT_LOG_QUERIES",
    "PERFORMANCE_COUNTERS",
    "AlertTemplate",
    "CatalogContext",
    "alert_name",
    "build_alert_definitions",
    "build_dcr_definitions",
    "build_diagnostic_definitions",
]
