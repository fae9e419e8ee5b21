"""CLI for asking one question against a notebook."""

import argparse
import sys

from notebook_rag.application.dto.answer_dto import AnswerRequest
from notebook_rag.config.compose import build_container
from notebook_rag.config.logging import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notebook-rag-ask", description="Answer a question from a notebook's sources"
    )
    parser.add_argument("--notebook", required=True, help="Notebook id")
    parser.add_argument("--question", required=True, help="Question to answer")
    parser.add_argument("--conversation", default=None, help="Existing conversation id")
    parser.add_argument("--user", default=None, help="Caller user id for the access check")
    return parser


def main(argv: list[str] | None = None, container=None) -> int:
    args = build_parser().parse_args(argv)
    if container is None:
        container = build_container()
        setup_logging(container.settings.log_level, container.settings.log_format)

    req = AnswerRequest(
        notebook_id=args.notebook,
        message=args.question,
        conversation_id=args.conversation,
        user_id=args.user,
    )
    result = container.get_answer_use_case().execute(req)

    if result.ok and result.value is not None:
        resp = result.value
        print("\n" + "=" * 80)
        print("ANSWER:")
        print("=" * 80)
        print(resp.answer)
        if resp.interaction is not None and resp.interaction.options:
            for i, option in enumerate(resp.interaction.options, 1):
                print(f"  {i}) {option.value}: {option.label}")
        if resp.citations:
            print("\n" + "=" * 80)
            print("CITATIONS:")
            print("=" * 80)
            for c in resp.citations:
                score = f" (score={c.score:.3f})" if c.score is not None else ""
                print(f"[{c.ref_number}] {c.source_title}{score}")
        print(f"\nconversation: {resp.conversation_id}")
        return 0

    err = result.error
    err_name = type(err).__name__
    err_msg = getattr(err, "message", str(err))
    print(f"\n[ERROR] {err_name}: {err_msg}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
