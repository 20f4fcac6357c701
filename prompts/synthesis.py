"""Synthesize stage: neutral emotional report prompt."""

PROMPT = """You are an impartial summarizer compiling what the Creative Council felt
about the creative assets for {brand_name}.

Council reactions (one entry per persona):
{judgments_json}

Pre-computed metrics (use these numbers as given, do not recompute them):
{metrics_json}

Brand context:
- Intended tone: {tone}
- USPs: {usps}

Task: produce a detailed, neutral emotional synthesis that reports how the
personas reacted. Do not include recommendations, tests, or any strategic /
operational language.

Output structure (Markdown):

## Quick Quantitative Snapshot
N, average / median score, std dev, score distribution, average emotional
intensity, average share likelihood, consensus index, polarization index.

## Dominant Emotions and Intensity
Top emotion tags with counts, and a brief statement of emotional spread.

## Demographic Slice Sentiment
Average score and dominant emotion by age group, gender and location where
that information is present.

## Attention and Moment Analysis
First-impression timing, and the most-cited timecoded moments if any.

## Shareability and Social Fit
Share likelihood and the groups personas said they'd share with.

## Trust and Authenticity Signals
Trust perception breakdown and the cues that raised or lowered trust.

## Common Positives (Aggregated)
## Common Negatives (Aggregated)

## Outliers and Polarizing Voices
Up to 3 personas whose score differs from the mean by more than 25 points.

## Representative Quotes
4 brief first-person quotes labelled by persona name and score.

## One-line Summary
One crisp sentence capturing the overall emotional picture.

Return the synthesis as Markdown text only.
"""
