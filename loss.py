# loss.py

import torch
import torch.nn.functional as F

def calculate_loss(model, batch, sample_weights=None):
    """
    Cross-entropy between the policy logits and the move that was actually
    played. Returns (loss, correct_count) where correct_count is the number of
    samples whose arg-max move matches the target.
    """
    model.train()
    obs_b, target_b = batch
    target_b = target_b.long()

    logits = model(obs_b)
    per_sample = F.cross_entropy(logits, target_b, reduction='none')
    if sample_weights is not None:
        per_sample = per_sample * sample_weights
        loss = per_sample.sum() / sample_weights.sum().clamp_min(1e-8)
    else:
        loss = per_sample.mean()

    with torch.no_grad():
        correct = (logits.argmax(dim=1) == target_b).sum().item()
    return loss, int(correct)
