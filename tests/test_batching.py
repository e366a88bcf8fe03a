from app.core.notifications.batching import chunked, send_in_batches


class TestSendInBatches:
    def test_pauses_between_batches_only(self):
        pauses = []
        sent = []

        result = send_in_batches(
            list(range(5)),
            sent.append,
            batch_size=2,
            delay_seconds=1.5,
            sleep=pauses.append,
        )

        assert result.sent == 5
        assert sent == [0, 1, 2, 3, 4]
        assert pauses == [1.5, 1.5]

    def test_failures_do_not_stop_the_batch(self):
        def _send(item):
            if item == "bad":
                raise RuntimeError("mailbox full")

        result = send_in_batches(["a", "bad", "c"], _send, batch_size=10)

        assert result.sent == 2
        assert result.failed == [("bad", "mailbox full")]
        assert result.failed_count == 1

    def test_chunked(self):
        assert [list(chunk) for chunk in chunked([1, 2, 3], 2)] == [[1, 2], [3]]
