"""Span attribute keys and fixed values.

GenAI keys follow the OpenTelemetry GenAI semantic conventions; `acp.*` keys
are specific to the Agent Client Protocol.
"""

GEN_AI_OPERATION_NAME = "gen_ai.operation.name"
GEN_AI_CONVERSATION_ID = "gen_ai.conversation.id"
GEN_AI_PROVIDER_NAME = "gen_ai.provider.name"
GEN_AI_AGENT_NAME = "gen_ai.agent.name"
GEN_AI_AGENT_ID = "gen_ai.agent.id"
GEN_AI_INPUT_MESSAGES = "gen_ai.input.messages"
GEN_AI_OUTPUT_MESSAGES = "gen_ai.output.messages"
GEN_AI_RESPONSE_FINISH_REASONS = "gen_ai.response.finish_reasons"
GEN_AI_TOOL_NAME = "gen_ai.tool.name"
GEN_AI_TOOL_CALL_ID = "gen_ai.tool.call.id"
GEN_AI_TOOL_TYPE = "gen_ai.tool.type"
GEN_AI_TOOL_CALL_ARGUMENTS = "gen_ai.tool.call.arguments"
GEN_AI_TOOL_CALL_RESULT = "gen_ai.tool.call.result"

ACP_METHOD_NAME = "acp.method.name"
ACP_PROTOCOL_VERSION = "acp.protocol.version"
ACP_AGENT_VERSION = "acp.agent.version"
ACP_CLIENT_NAME = "acp.client.name"
ACP_CLIENT_VERSION = "acp.client.version"
ACP_TIME_TO_FIRST_TOKEN_MS = "acp.time_to_first_token_ms"
ACP_TOOL_KIND = "acp.tool.kind"

RPC_SYSTEM = "rpc.system"
RPC_METHOD = "rpc.method"
JSONRPC_REQUEST_ID = "jsonrpc.request.id"
NETWORK_TRANSPORT = "network.transport"
ERROR_TYPE = "error.type"

OPERATION_INVOKE_AGENT = "invoke_agent"
OPERATION_EXECUTE_TOOL = "execute_tool"

TRANSPORT_PIPE = "pipe"
ERROR_TYPE_OTHER = "_OTHER"
ERROR_TYPE_TOOL = "tool_error"

ROOT_SPAN_NAME = "acp_session"

METRIC_OPERATION_DURATION = "gen_ai.client.operation.duration"
METRIC_TIME_TO_FIRST_TOKEN = "gen_ai.server.time_to_first_token"
