"""acp-traces: OpenTelemetry tracing proxy for the Agent Client Protocol."""
