# PR Prompt Review - Review Action Package
#
# This package contains the pipeline that reviews a pull-request patch with
# a completion model. Each stage is in its own file following the
# one-concern-per-file layout.
#
# The pipeline is orchestrated by review_action_main.py and runs inside a
# GitHub Actions runner. It reads the patch from the workspace (or computes
# it with git), fans the patch out to the completion provider once per
# configured prompt, and writes back to the pull request (comments, reviews).
#
# Stage flow:
#   1. Load Action Config -> 2. Acquire Patch -> 3. Prompt Table
#   -> 4. Completion Request -> 5. Fan Out Prompts
#   -> 6. Post Comment & Review
