from app.services.llm import get_llm, LLMMessage

llm = get_llm()
print(llm.complete("You are a terse assistant.", [LLMMessage(role="user", content="Say hello in one sentence.")]))


# running this check script
# cd backend
# python -m scripts.check_llm
