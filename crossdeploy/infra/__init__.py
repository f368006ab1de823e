"""CDK rendering of the pipeline — requires ``aws-cdk-lib`` and a Node.js runtime.

Modules
-------
app
    Builds the CDK app from context values or a ``PipelineConfig``.
dev_account_setup_stack
    Repository, artifact key and artifact bucket in the dev account.
cross_account_iam_stack
    The pipeline action role and deployment role of one target account.
codebuild_construct
    The synth-and-scan build project.
codepipeline_stack
    The pipeline itself, rendered from the assembled stage graph.
"""
