"""Instructor setup: a DigitalOcean GenAI model access key for the workshop.

The key is created through the GenAI API with curl.  Its JSON response is
held secret; the participants get the inference endpoint, the model name
and the key itself as stack outputs.
"""

from __future__ import annotations

from stackgraph.engine.outputs import Output
from stackgraph.models.resources import Ref, ShellCommandSpec, resource
from stackgraph.settings import StackSettings
from stackgraph.stacks.base import Stack

GENAI_API_BASE = "https://api.digitalocean.com/v2/gen-ai"
INFERENCE_ENDPOINT = "https://inference.do-ai.run/v1"
DEFAULT_KEY_NAME = "cfgmgmtcamp-workshop-2026"
DEFAULT_MODEL = "anthropic-claude-opus-4.5"

# Secrets reach curl through the environment, never argv
CREATE_COMMAND = f"""\
curl -sS --fail-with-body -X POST "{GENAI_API_BASE}/models/api_keys" \\
  -H "Authorization: Bearer $DO_TOKEN" \\
  -H "Content-Type: application/json" \\
  -d "{{\\"name\\": \\"$KEY_NAME\\"}}"
"""

# Prefer the uuid returned at creation; fall back to a lookup by name
DELETE_COMMAND = f"""\
KEY_UUID=$(printf '%s' "$CREATE_STDOUT" | jq -r '.api_key_info.uuid // empty' 2>/dev/null)
if [ -z "$KEY_UUID" ]; then
  KEY_UUID=$(curl -sS -X GET "{GENAI_API_BASE}/models/api_keys" \\
    -H "Authorization: Bearer $DO_TOKEN" \\
    -H "Content-Type: application/json" | \\
    jq -r --arg name "$KEY_NAME" '.api_key_infos[]? | select(.name==$name) | .uuid // empty')
fi
if [ -n "$KEY_UUID" ]; then
  curl -sS -X DELETE "{GENAI_API_BASE}/models/api_keys/$KEY_UUID" \\
    -H "Authorization: Bearer $DO_TOKEN" \\
    -H "Content-Type: application/json"
else
  echo "Key not found"
fi
"""

TEST_COMMAND = (
    'curl -s -X POST "{endpoint}/chat/completions" \\\n'
    '  -H "Authorization: Bearer <YOUR_MODEL_ACCESS_KEY>" \\\n'
    '  -H "Content-Type: application/json" \\\n'
    '  -d \'{{"model": "{model}", "messages": [{{"role": "user", "content": "Hello!"}}], '
    '"temperature": 0.7, "max_tokens": 100}}\''
)

ESC_SNIPPET = """\
# Add this to your workshop-workload-env ESC environment:
values:
  llm:
    endpoint: "{endpoint}"
    model: "{model}"
    apiKey:
      fn::secret: "<paste-model-access-key-here>"
"""

KAGENT_VALUES_SNIPPET = """\
# Kagent Helm values for using this LLM:
providers:
  default: openAI
  openAI:
    provider: OpenAI
    model: {model}
    apiKeySecretRef: kagent-openai
    apiKeySecretKey: OPENAI_API_KEY
    config:
      baseUrl: {endpoint}
      maxTokens: 4096  # Required for Anthropic models
"""


def build(settings: StackSettings) -> Stack:
    key_name = settings.get("keyName", DEFAULT_KEY_NAME)
    model = settings.get("model", DEFAULT_MODEL)
    do_token = settings.require_secret("digitalocean:token")

    model_key = resource(
        "create-model-access-key",
        ShellCommandSpec(
            create=CREATE_COMMAND,
            delete=DELETE_COMMAND,
            environment={"DO_TOKEN": do_token, "KEY_NAME": key_name},
            parse_json=True,
            secret_outputs=True,
        ),
    )

    secret_key = Ref("create-model-access-key", "json.api_key_info.secret_key")
    return Stack(
        name="model-key",
        description="DigitalOcean GenAI model access key for workshop participants",
        resources=[model_key],
        outputs=[
            Output("llmEndpoint", INFERENCE_ENDPOINT),
            Output("llmModel", model),
            Output("llmApiKey", secret_key, secret=True),
            Output("modelAccessKeyName", key_name),
            Output("modelAccessKeyUuid", Ref("create-model-access-key", "json.api_key_info.uuid")),
            Output("openaiApiBase", INFERENCE_ENDPOINT),
            Output("openaiApiKey", secret_key, secret=True),
            Output("testCommand", TEST_COMMAND.format(endpoint=INFERENCE_ENDPOINT, model=model)),
            Output("escEnvironmentSnippet", ESC_SNIPPET.format(endpoint=INFERENCE_ENDPOINT, model=model)),
            Output("kagentHelmValuesSnippet", KAGENT_VALUES_SNIPPET.format(endpoint=INFERENCE_ENDPOINT, model=model)),
        ],
    )
