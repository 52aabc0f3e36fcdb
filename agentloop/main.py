"""
agentloop - Command Line Entry Point
====================================

Wires configuration, the OpenAI model client and the built-in tools into
a Context and runs a single request.

Run with:
    python -m agentloop.main "List the files in the current directory"
    python -m agentloop.main --stream "Tell me a short story"
    python -m agentloop.main --refine "Write a haiku about rivers"

Or after installing:
    agentloop "..."
"""

import asyncio
import sys

from agentloop.errors import AgentError
from agentloop.utils.logger import Logger

main_logger = Logger("Main")

USAGE = "usage: agentloop [--stream | --refine] PROMPT"


async def main(argv: list[str]) -> int:
    """Async entry point; returns the process exit code."""
    mode = "tools"
    if argv and argv[0] in ("--stream", "--refine"):
        mode = argv.pop(0)[2:]

    prompt = " ".join(argv).strip()
    if not prompt:
        print(USAGE, file=sys.stderr)
        return 2

    from agentloop.agent import Context
    from agentloop.llm.openai_client import OpenAIModelClient
    from agentloop.tools import create_builtin_registry

    try:
        main_logger.info("Creating model client...")
        llm = OpenAIModelClient()

        context = Context(llm=llm)
        context.register_tool_registry(create_builtin_registry())

        if mode == "stream":
            async for chunk in context.stream_chat(prompt):
                print(chunk, end="", flush=True)
            print()

        elif mode == "refine":
            from agentloop.workflows import EvaluatorOptimizer

            result = await EvaluatorOptimizer(context).run(prompt)
            main_logger.info(
                f"Refinement {result.termination.value} after {result.iterations} iteration(s)"
            )
            print(result.final_output)

        else:
            response = await context.chat_with_tools(prompt)
            print(response.text)

    except (AgentError, ValueError) as e:
        main_logger.error("Request failed", e)
        return 1

    return 0


def run() -> None:
    """Synchronous entry point used by the `agentloop` console script."""
    try:
        sys.exit(asyncio.run(main(sys.argv[1:])))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
