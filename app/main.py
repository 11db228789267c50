"""
Streamlit Frontend for the Expense Assistant

A chat page over the assistant API. The reply is rendered while it
streams: text fragments patch the assistant message in place, and tool
outcomes appear under it as they complete.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Visible outcome for every action the assistant took
3. Clear error messages in simple language
4. No hidden actions

Run the API first (`expense-assistant-api`), then
`streamlit run app/main.py`.
"""

import streamlit as st

from expense_assistant.config import get_settings
from expense_assistant.streaming import (
    ChatClientError,
    ChatMessage,
    ChatSession,
    ChatStreamConsumer,
)


# Page configuration
st.set_page_config(
    page_title="Expense Assistant",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

TOOL_LABELS = {
    "create_bill": "Bill created",
    "update_bill": "Bill updated",
    "delete_bill": "Bill deleted",
    "search_bills": "Bills searched",
    "create_income": "Income created",
    "update_income": "Income updated",
    "delete_income": "Income deleted",
    "search_incomes": "Incomes searched",
    "create_category": "Category created",
    "update_category": "Category updated",
    "delete_category": "Category deleted",
    "create_income_category": "Income category created",
    "list_categories": "Categories listed",
    "get_analytics": "Analytics",
    "suggest_income_split": "Income split suggested",
}


def get_consumer(user_id: str, organization_id: str) -> ChatStreamConsumer:
    """One HTTP client per signed-in identity, kept for the browser session."""
    key = (user_id, organization_id)
    if st.session_state.get("consumer_key") != key:
        previous = st.session_state.get("consumer")
        if previous is not None:
            previous.close()
        st.session_state.consumer = ChatStreamConsumer(
            base_url=get_settings().app.api_base_url,
            user_id=user_id,
            organization_id=organization_id,
        )
        st.session_state.consumer_key = key
        st.session_state.chat = ChatSession()
    return st.session_state.consumer


def render_tool_calls(tool_calls: list[dict]):
    for call in tool_calls:
        result = call.get("result") or {}
        label = TOOL_LABELS.get(call.get("tool"), call.get("tool"))
        if result.get("needsConfirmation"):
            st.warning(f"⚠️ {result.get('message', 'Confirmation needed')}")
        elif result.get("success"):
            message = result.get("message")
            st.caption(f"✅ {label}" + (f": {message}" if message else ""))
        else:
            st.caption(f"❌ {label}: {result.get('error', 'failed')}")


def render_body(message: ChatMessage):
    if message.is_error:
        st.error(message.content)
    else:
        st.markdown(message.content + (" ▌" if message.in_progress else ""))
    render_tool_calls(message.tool_calls)


def render_message(message: ChatMessage):
    with st.chat_message(message.role):
        render_body(message)


def render_sidebar(consumer: ChatStreamConsumer, session: ChatSession):
    st.sidebar.markdown("---")
    if st.sidebar.button("➕ New conversation"):
        consumer.new_conversation(session)
        st.rerun()

    try:
        conversations = consumer.list_conversations()
    except ChatClientError as e:
        st.sidebar.error(str(e))
        return

    if not conversations:
        st.sidebar.caption("No conversations yet")
    for conversation in conversations:
        col1, col2 = st.sidebar.columns([5, 1])
        active = conversation["id"] == session.conversation_id
        title = ("▶ " if active else "") + conversation["title"]
        if col1.button(title, key=f"open-{conversation['id']}"):
            consumer.select_conversation(session, conversation["id"])
            st.rerun()
        if col2.button("🗑️", key=f"delete-{conversation['id']}"):
            consumer.delete_conversation(session, conversation["id"])
            st.rerun()


def main():
    """Main application entry point."""
    st.sidebar.title("💰 Expense Assistant")
    user_id = st.sidebar.text_input("User ID", key="user_id")
    organization_id = st.sidebar.text_input("Organization ID", key="organization_id")

    st.title("💬 Ask your expense assistant")
    st.caption("Add bills and incomes, manage categories, or ask about your spending.")

    if not user_id or not organization_id:
        st.info("Enter your user and organization to start.")
        return

    consumer = get_consumer(user_id, organization_id)
    session: ChatSession = st.session_state.chat
    render_sidebar(consumer, session)

    for message in session.messages:
        render_message(message)

    prompt = st.chat_input("e.g. Add a $150 grocery bill paid today")
    if not prompt:
        return

    with st.chat_message("user"):
        st.markdown(prompt)

    with st.chat_message("assistant"):
        placeholder = st.empty()
        status = st.empty()

        def on_event(chat: ChatSession, event):
            reply = chat.messages[-1]
            if reply.role == "assistant":
                with placeholder.container():
                    render_body(reply)
            if chat.running_tool:
                status.caption(f"⏳ Running {chat.running_tool}...")
            else:
                status.empty()

        try:
            consumer.send(session, prompt, on_event=on_event)
        except ChatClientError as e:
            st.error(f"❌ {e}")

    st.rerun()


if __name__ == "__main__":
    main()
