import torch

from llm_generation.generation import BeamHypotheses, finalize_beam_hypotheses, select_beam_candidates


def test_beam_hypotheses_keeps_best_num_beams():
    hyps = BeamHypotheses(num_beams=2, max_length=10, length_penalty=1.0, early_stopping=False)
    hyps.add(torch.tensor([1, 2]), -4.0)  # score -2.0
    hyps.add(torch.tensor([1, 3]), -2.0)  # score -1.0
    hyps.add(torch.tensor([1, 4]), -1.0)  # score -0.5, evicts -2.0
    assert len(hyps) == 2
    assert [h.tolist() for h in hyps.best(2)] == [[1, 4], [1, 3]]
    assert hyps.worst_score == -1.0


def test_beam_hypotheses_rejects_ties_when_full():
    hyps = BeamHypotheses(num_beams=1, max_length=10, length_penalty=1.0, early_stopping=False)
    hyps.add(torch.tensor([1, 2]), -2.0)
    hyps.add(torch.tensor([1, 3]), -2.0)
    assert [h.tolist() for h in hyps.best(1)] == [[1, 2]]


def test_beam_hypotheses_length_penalty():
    hyps = BeamHypotheses(num_beams=2, max_length=10, length_penalty=2.0, early_stopping=False)
    hyps.add(torch.tensor([1, 2, 3, 4]), -8.0)  # -8 / 16 = -0.5
    hyps.add(torch.tensor([1, 2]), -1.6)        # -1.6 / 4 = -0.4
    assert [len(h) for h in hyps.best(2)] == [2, 4]


def test_beam_hypotheses_is_done():
    hyps = BeamHypotheses(num_beams=1, max_length=10, length_penalty=1.0, early_stopping=False)
    assert not hyps.is_done(-1.0, cur_len=3)
    hyps.add(torch.tensor([1, 2]), -1.0)  # score -0.5
    # A live beam scoring -0.3 at length 3 could still win.
    assert not hyps.is_done(-0.9, cur_len=3)
    assert hyps.is_done(-3.0, cur_len=3)

    early = BeamHypotheses(num_beams=1, max_length=10, length_penalty=1.0, early_stopping=True)
    early.add(torch.tensor([1, 2]), -100.0)
    assert early.is_done(0.0, cur_len=3)


def test_select_beam_candidates_greedy():
    scores = torch.log(torch.tensor([[0.1, 0.6, 0.3], [0.2, 0.2, 0.6]]))
    beam_scores = torch.tensor([0.0, -1e9])
    next_scores, next_tokens = select_beam_candidates(scores, beam_scores, batch_size=1, num_beams=2, do_sample=False)
    assert next_scores.shape == (1, 4)
    # Only the first beam is live, so every candidate comes from it.
    assert next_tokens[0, :3].tolist() == [1, 2, 0]
    assert (next_scores[0, :-1] >= next_scores[0, 1:]).all()


def test_select_beam_candidates_tie_prefers_lower_beam_then_token():
    scores = torch.zeros(2, 3)
    beam_scores = torch.zeros(2)
    _, next_tokens = select_beam_candidates(scores, beam_scores, batch_size=1, num_beams=2, do_sample=False)
    assert next_tokens.tolist() == [[0, 1, 2, 3]]


def test_select_beam_candidates_sampling_sorted():
    torch.manual_seed(0)
    scores = torch.log_softmax(torch.randn(4, 10), dim=-1)
    beam_scores = torch.zeros(4)
    next_scores, next_tokens = select_beam_candidates(
        scores, beam_scores, batch_size=2, num_beams=2, do_sample=True, top_k=5
    )
    assert next_tokens.shape == (2, 4)
    assert (next_scores[:, :-1] >= next_scores[:, 1:]).all()
    assert torch.isfinite(next_scores).all()


def test_finalize_pads_and_appends_eos():
    hyps = BeamHypotheses(num_beams=2, max_length=6, length_penalty=1.0, early_stopping=False)
    hyps.add(torch.tensor([1, 2]), -0.2)
    hyps.add(torch.tensor([1, 2, 3, 4]), -2.0)
    decoded = finalize_beam_hypotheses(
        [hyps],
        num_return_sequences=2,
        max_length=6,
        pad_token_id=9,
        eos_token_ids=[0],
        do_sample=False,
        input_ids=torch.zeros(2, 4, dtype=torch.long),
    )
    assert decoded.tolist() == [[1, 2, 0, 9, 9], [1, 2, 3, 4, 0]]


def test_finalize_without_eos_only_pads():
    hyps = BeamHypotheses(num_beams=2, max_length=6, length_penalty=1.0, early_stopping=False)
    hyps.add(torch.tensor([1, 2, 3]), -0.3)
    hyps.add(torch.tensor([1, 2]), -2.0)
    decoded = finalize_beam_hypotheses(
        [hyps],
        num_return_sequences=2,
        max_length=6,
        pad_token_id=None,
        eos_token_ids=[],
        do_sample=False,
        input_ids=torch.zeros(2, 3, dtype=torch.long),
    )
    assert decoded.tolist() == [[1, 2, 3], [1, 2, 0]]


def test_finalize_full_length_hypothesis_gets_no_eos():
    hyps = BeamHypotheses(num_beams=1, max_length=3, length_penalty=1.0, early_stopping=False)
    hyps.add(torch.tensor([1, 2, 3]), -0.3)
    decoded = finalize_beam_hypotheses(
        [hyps],
        num_return_sequences=1,
        max_length=3,
        pad_token_id=0,
        eos_token_ids=[0],
        do_sample=False,
        input_ids=torch.zeros(1, 3, dtype=torch.long),
    )
    assert decoded.tolist() == [[1, 2, 3]]


def test_select_beam_candidates_leaves_room_for_every_eos_id():
    # Three EOS ids on the best beam still leave two continuations.
    scores = torch.log(torch.tensor([[0.3, 0.3, 0.3, 0.1, 1e-9, 1e-9], [1.0 / 6] * 6]))
    beam_scores = torch.tensor([0.0, -1e9])
    next_scores, next_tokens = select_beam_candidates(
        scores, beam_scores, batch_size=1, num_beams=2, do_sample=False, num_eos_tokens=3
    )
    assert next_tokens.shape == (1, 8)
    assert next_tokens[0, :4].tolist() == [0, 1, 2, 3]
    assert (next_scores[0, :-1] >= next_scores[0, 1:]).all()


def test_select_beam_candidates_sampling_with_several_eos_ids():
    torch.manual_seed(0)
    scores = torch.log_softmax(torch.randn(2, 10), dim=-1)
    next_scores, next_tokens = select_beam_candidates(
        scores, torch.zeros(2), batch_size=1, num_beams=2, do_sample=True, top_k=1, num_eos_tokens=2
    )
    # top_k is raised to the three tokens each beam needs.
    assert next_tokens.shape == (1, 6)
    assert torch.isfinite(next_scores).all()
