ANALYSIS_PROMPT = """Please analyze the following code and provide:

1. Programming language identification
2. Potential errors or issues (syntax, logic, style, security)
3. Suggestions for improvements
4. If applicable, simulate the code execution (for simple, safe code only)

Code to analyze:
```
{code}
```

Respond with a single fenced ```json block in the following format:
{{
  "language": "detected programming language",
  "errors": [
    {{
      "type": "syntax|logic|style|security",
      "severity": "low|medium|high",
      "lineNumber": number or null,
      "description": "description of the issue",
      "suggestedFix": "suggested fix or null"
    }}
  ],
  "suggestions": [
    {{
      "type": "improvement|optimization|best-practice",
      "description": "description of the suggestion",
      "lineNumber": number or null,
      "suggestedCode": "suggested code or null"
    }}
  ],
  "simulation": {{
    "canSimulate": boolean,
    "output": "simulated output or null",
    "errors": ["any runtime errors"],
    "executionTime": number or null,
    "securityRisks": ["any security concerns"]
  }}
}}"""


def build_prompt(code: str) -> str:
    return ANALYSIS_PROMPT.format(code=code)
