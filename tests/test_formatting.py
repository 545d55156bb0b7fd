"""Tests for the Discord message formatters."""

from claude_mirror.chat import formatting as fmt


class TestHelpers:
    def test_strip_ansi(self):
        assert fmt.strip_ansi("\x1b[31mred\x1b[0m plain") == "red plain"

    def test_strip_markdown(self):
        assert fmt.strip_markdown("**bold** ~~gone~~ ||spoiler||") == "bold gone spoiler"
        assert fmt.strip_markdown("```py\nx = 1\n```") == "py\nx = 1\n"
        assert fmt.strip_markdown("run `ls`") == "run 'ls'"

    def test_strip_markdown_keeps_identifiers_and_math(self):
        assert fmt.strip_markdown("my_var_name") == "my_var_name"
        assert fmt.strip_markdown("2 * 3") == "2 * 3"

    def test_truncate(self):
        assert fmt.truncate("short", 10) == "short"
        assert fmt.truncate("a" * 20, 10) == "aaaaaaa..."

    def test_thread_name(self):
        name = fmt.thread_name("devbox", "/home/me/projects/api/", "abcdef123456")
        assert name == "devbox • api • abcdef12"

    def test_thread_name_without_metadata(self):
        assert fmt.thread_name(None, None, "abcdef123456") == "abcdef12"

    def test_thread_name_is_capped(self):
        assert len(fmt.thread_name("h" * 200, "/p", "id")) == fmt.THREAD_NAME_MAX

    def test_tool_preview_picks_known_keys(self):
        assert fmt.tool_preview("Read", {"file_path": "/etc/hosts"}) == "/etc/hosts"
        assert fmt.tool_preview("Bash", {"command": "ls\n-la"}) == "ls -la"
        assert fmt.tool_preview("X", {"other": 1}) == ""


class TestSessionMessages:
    def test_session_start_lists_metadata(self):
        text = fmt.format_session_start(
            "s1", hostname="box", project_dir="/srv/app", terminal_target="2:1.0"
        )
        assert "Session started" in text
        assert "`box`" in text
        assert "`/srv/app`" in text
        assert "`2:1.0`" in text
        assert "Reply in this thread" in text

    def test_session_start_without_terminal(self):
        assert "Reply in this thread" not in fmt.format_session_start("s1")

    def test_session_end_duration(self):
        assert "Duration: 1h 1m 5s" in fmt.format_session_end("s1", 3665)
        assert "Duration: 2m 0s" in fmt.format_session_end("s1", 120)
        assert "Duration" not in fmt.format_session_end("s1", None)

    def test_stale_session_end(self):
        text = fmt.format_stale_session_end("tmux pane 1:0.0 is gone")
        assert text.startswith("🔌 **Session ended (terminal closed)**")
        assert text.endswith("tmux pane 1:0.0 is gone")


class TestEventMessages:
    def test_user_and_agent(self):
        assert fmt.format_user_input("hi") == "👤 **User (cli):**\nhi"
        assert fmt.format_agent_response("\x1b[1mdone\x1b[0m") == "🤖 **Claude:**\ndone"

    def test_tool_start_escapes_backticks(self):
        text = fmt.format_tool_start("Bash", {"command": "echo `date`"})
        assert text == "🔧 **Bash** `echo 'date'`"

    def test_tool_start_without_preview(self):
        assert fmt.format_tool_start("Task", None) == "🔧 **Task**"

    def test_tool_result_truncates(self):
        text = fmt.format_tool_result("Bash", {"command": "cat big"}, "y" * 5000)
        assert "📥 Input:" in text
        assert "... (truncated)" in text
        assert len(text) < 1700

    def test_error_is_fenced(self):
        text = fmt.format_error("boom ``` inside")
        assert text.startswith("❌ **Error:**\n```\n")
        assert text.count("```") == 2

    def test_approval_request(self):
        assert "Bash: rm -rf build" in fmt.format_approval_request("Bash: rm -rf build")

    def test_compaction(self):
        assert "/compact" in fmt.format_compaction_started("manual")
        assert "nearly full" in fmt.format_compaction_started("auto")
        assert "nearly full" in fmt.format_compaction_started(None)

    def test_injection_failure(self):
        assert "no tmux pane" in fmt.format_injection_failure(None, "x")
        text = fmt.format_injection_failure("1:0.0", "can't find pane")
        assert "`1:0.0`" in text
        assert "can't find pane" in text
